# Package init for app.models
from .base import Base as Base  # explicit re-export
from .event import (
    Event as Event,
)
from .event import (
    EventImage as EventImage,
)
from .event import (
    EventImageCounter as EventImageCounter,
)
from .event import (
    EventTag as EventTag,
)
from .event import (
    EventVideo as EventVideo,
)
from .event import (
    Tag as Tag,
)
from .event import (
    UrlRedirect as UrlRedirect,
)
from .logging import EventErrorLog as EventErrorLog
