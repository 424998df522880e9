import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from app.core.event_constants import EVENT_STATUS_DRAFT
from app.models.base import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class Event(Base):
    __tablename__ = "Event"
    EventID = Column(String(36), primary_key=True, default=_uuid_str)
    Title = Column(String(200), nullable=False)
    # Unique constraint is the authoritative slug guard; pre-checks are advisory only.
    Slug = Column(String(100), nullable=False)
    ShortDescription = Column(String(500), nullable=True)
    FullDescription = Column(Text, nullable=True)
    EventDate = Column(DateTime, nullable=True)
    Venue = Column(String(255), nullable=True)
    Status = Column(String(16), nullable=False, default=EVENT_STATUS_DRAFT)  # 'draft' | 'published'
    IsFeatured = Column(Boolean, default=False)
    CreatedBy = Column(String(36), nullable=True)
    UpdatedBy = Column(String(36), nullable=True)
    CreatedAt = Column(DateTime, server_default=func.now())
    UpdatedAt = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("Slug", name="uq_event_slug"),)


class Tag(Base):
    __tablename__ = "Tag"
    TagID = Column(String(36), primary_key=True, default=_uuid_str)
    Name = Column(String(100), nullable=False, unique=True)
    Slug = Column(String(100), nullable=False, unique=True)
    CreatedAt = Column(DateTime, server_default=func.now())


class EventTag(Base):
    __tablename__ = "EventTag"
    EventID = Column(String(36), ForeignKey("Event.EventID"), primary_key=True)
    TagID = Column(String(36), ForeignKey("Tag.TagID"), primary_key=True)


class EventImage(Base):
    __tablename__ = "EventImage"
    # Opaque id shared by the three object paths; never derived from the upload filename
    ImageID = Column(String(36), primary_key=True, default=_uuid_str)
    EventID = Column(String(36), ForeignKey("Event.EventID"), nullable=False, index=True)
    # All three are NOT NULL: a row with a partial variant set cannot exist
    ImageUrlSmall = Column(String(1024), nullable=False)
    ImageUrlMedium = Column(String(1024), nullable=False)
    ImageUrlLarge = Column(String(1024), nullable=False)
    AltText = Column(String(500), nullable=True)
    DisplayOrder = Column(Integer, nullable=False)
    CreatedAt = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("EventID", "DisplayOrder", name="uq_event_image_order"),
    )


class EventImageCounter(Base):
    """Per-event display order counter, advanced only by an atomic UPDATE."""

    __tablename__ = "EventImageCounter"
    EventID = Column(String(36), ForeignKey("Event.EventID"), primary_key=True)
    NextOrder = Column(Integer, nullable=False, default=0)


class EventVideo(Base):
    __tablename__ = "EventVideo"
    VideoID = Column(String(36), primary_key=True, default=_uuid_str)
    EventID = Column(String(36), ForeignKey("Event.EventID"), nullable=False, index=True)
    YoutubeUrl = Column(String(500), nullable=False)
    YoutubeVideoID = Column(String(16), nullable=False)
    DisplayOrder = Column(Integer, nullable=False, default=0)
    CreatedAt = Column(DateTime, server_default=func.now())


class UrlRedirect(Base):
    __tablename__ = "UrlRedirect"
    RedirectID = Column(Integer, primary_key=True, autoincrement=True)
    OldSlug = Column(String(100), nullable=False, index=True)
    NewSlug = Column(String(100), nullable=False)
    EventID = Column(String(36), ForeignKey("Event.EventID"), nullable=False)
    CreatedAt = Column(DateTime, server_default=func.now())
