# event_constants.py

import re
from enum import Enum
from typing import NamedTuple, Optional, Tuple

EVENT_STATUS_DRAFT = "draft"
EVENT_STATUS_PUBLISHED = "published"
EVENT_STATUSES = (EVENT_STATUS_DRAFT, EVENT_STATUS_PUBLISHED)


class ImageSize(NamedTuple):
    folder: str
    width: int


# Upload order matters: rollback deletes the variants written before a failure.
IMAGE_SIZES: Tuple[ImageSize, ...] = (
    ImageSize("small", 200),  # lists and previews
    ImageSize("medium", 600),  # content display
    ImageSize("large", 1200),  # lightbox
)
SIZE_FOLDERS = tuple(s.folder for s in IMAGE_SIZES)

VARIANT_CONTENT_TYPE = "image/jpeg"


def event_folder_path(event_id: str) -> str:
    return f"events/{event_id}"


def event_image_path(event_id: str, image_id: str, size: str) -> str:
    if size not in SIZE_FOLDERS:
        raise ValueError(f"Unknown image size: {size}")
    return f"{event_folder_path(event_id)}/images/{size}/{image_id}.jpg"


class ErrorType(str, Enum):
    UPLOAD_FAILED = "upload_failed"
    PROCESSING_FAILED = "processing_failed"
    INVALID_YOUTUBE_URL = "invalid_youtube_url"
    DATABASE_ERROR = "database_error"
    STORAGE_ERROR = "storage_error"
    VALIDATION_ERROR = "validation_error"


YOUTUBE_URL_RE = re.compile(
    r"^https?://(www\.)?(youtube\.com/(watch\?v=|embed/|v/)|youtu\.be/)([a-zA-Z0-9_-]{11})"
)


def extract_youtube_video_id(url: str) -> Optional[str]:
    m = YOUTUBE_URL_RE.match(url or "")
    return m.group(4) if m else None


def is_valid_youtube_url(url: str) -> bool:
    return YOUTUBE_URL_RE.match(url or "") is not None


def youtube_embed_url(video_id: str) -> str:
    return f"https://www.youtube.com/embed/{video_id}"
