"""SQLAlchemy-backed content store for events, gallery images, videos,
slug redirects and the event error log.

Every write commits its own unit of work. Any database failure rolls the
session back and surfaces as ``ContentStoreError`` so callers never see raw
driver exceptions; a violation of the event slug unique constraint surfaces
as ``SlugConflictError``.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.event import (
    Event,
    EventImage,
    EventImageCounter,
    EventTag,
    EventVideo,
    Tag,
    UrlRedirect,
)
from app.models.logging import EventErrorLog

logger = logging.getLogger(__name__)


class ContentStoreError(Exception):
    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}" if cause else f"{operation} failed")


class SlugConflictError(ContentStoreError):
    """Raised when a write would give two events the same slug."""


def _is_slug_violation(exc: IntegrityError) -> bool:
    text = str(getattr(exc, "orig", exc))
    return "uq_event_slug" in text or "Event.Slug" in text


class ContentStore:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except IntegrityError as exc:
            self.db.rollback()
            if _is_slug_violation(exc):
                raise SlugConflictError(operation, exc) from exc
            raise ContentStoreError(operation, exc) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("content_store.error", extra={"operation": operation, "error": str(exc)})
            raise ContentStoreError(operation, exc) from exc

    # Events

    def create_event(self, title: str, slug: str, **fields) -> Event:
        with self._guard("create_event"):
            event = Event(Title=title, Slug=slug, **fields)
            self.db.add(event)
            self.db.commit()
            self.db.refresh(event)
            return event

    def get_event(self, event_id: str) -> Optional[Event]:
        with self._guard("get_event"):
            return self.db.get(Event, event_id)

    def get_event_by_slug(self, slug: str) -> Optional[Event]:
        with self._guard("get_event_by_slug"):
            return self.db.execute(select(Event).where(Event.Slug == slug)).scalars().first()

    def event_exists_with_slug(self, slug: str, exclude_id: Optional[str] = None) -> bool:
        with self._guard("event_exists_with_slug"):
            stmt = select(Event.EventID).where(Event.Slug == slug)
            if exclude_id:
                stmt = stmt.where(Event.EventID != exclude_id)
            return self.db.execute(stmt.limit(1)).first() is not None

    def update_event_slug(
        self, event_id: str, new_slug: str, updated_by: Optional[str] = None
    ) -> Optional[Event]:
        """Set a new slug; returns None when the event does not exist."""
        with self._guard("update_event_slug"):
            event = self.db.get(Event, event_id)
            if event is None:
                return None
            event.Slug = new_slug
            if updated_by is not None:
                event.UpdatedBy = updated_by
            self.db.commit()
            self.db.refresh(event)
            return event

    def list_event_tags(self, event_id: str) -> List[Tag]:
        with self._guard("list_event_tags"):
            stmt = (
                select(Tag)
                .join(EventTag, EventTag.TagID == Tag.TagID)
                .where(EventTag.EventID == event_id)
                .order_by(Tag.Name)
            )
            return list(self.db.execute(stmt).scalars().all())

    # Gallery images

    def count_event_images(self, event_id: str) -> int:
        with self._guard("count_event_images"):
            stmt = select(func.count()).select_from(EventImage).where(EventImage.EventID == event_id)
            return int(self.db.execute(stmt).scalar_one())

    def _advance_counter(self, event_id: str) -> Optional[int]:
        stmt = (
            update(EventImageCounter)
            .where(EventImageCounter.EventID == event_id)
            .values(NextOrder=EventImageCounter.NextOrder + 1)
            .returning(EventImageCounter.NextOrder)
            .execution_options(synchronize_session=False)
        )
        row = self.db.execute(stmt).first()
        return None if row is None else int(row[0]) - 1

    def next_image_display_order(self, event_id: str) -> int:
        """Allocate the next gallery position for an event.

        The counter row is advanced with a single UPDATE ... RETURNING so two
        uploads to the same event can never be handed the same value. The
        first allocation creates the row, seeded past any existing images.
        """
        with self._guard("next_image_display_order"):
            for _ in range(2):
                allocated = self._advance_counter(event_id)
                if allocated is not None:
                    self.db.commit()
                    return allocated
                current_max = self.db.execute(
                    select(func.max(EventImage.DisplayOrder)).where(EventImage.EventID == event_id)
                ).scalar()
                first = 0 if current_max is None else int(current_max) + 1
                try:
                    self.db.add(EventImageCounter(EventID=event_id, NextOrder=first + 1))
                    self.db.commit()
                    return first
                except IntegrityError:
                    # Another upload created the counter first; take the UPDATE path
                    self.db.rollback()
            raise ContentStoreError("next_image_display_order")

    def insert_image_asset(self, asset: EventImage) -> EventImage:
        with self._guard("insert_image_asset"):
            self.db.add(asset)
            self.db.commit()
            return asset

    def get_image_asset(self, image_id: str) -> Optional[EventImage]:
        with self._guard("get_image_asset"):
            return self.db.get(EventImage, image_id)

    def list_event_images(self, event_id: str) -> List[EventImage]:
        with self._guard("list_event_images"):
            stmt = (
                select(EventImage)
                .where(EventImage.EventID == event_id)
                .order_by(EventImage.DisplayOrder)
            )
            return list(self.db.execute(stmt).scalars().all())

    def delete_image_asset(self, image_id: str) -> Optional[EventImage]:
        """Delete the row and return it (None when it was already gone)."""
        with self._guard("delete_image_asset"):
            asset = self.db.get(EventImage, image_id)
            if asset is None:
                return None
            self.db.delete(asset)
            self.db.commit()
            return asset

    # Videos

    def count_event_videos(self, event_id: str) -> int:
        with self._guard("count_event_videos"):
            stmt = select(func.count()).select_from(EventVideo).where(EventVideo.EventID == event_id)
            return int(self.db.execute(stmt).scalar_one())

    def next_video_display_order(self, event_id: str) -> int:
        with self._guard("next_video_display_order"):
            current = self.db.execute(
                select(func.max(EventVideo.DisplayOrder)).where(EventVideo.EventID == event_id)
            ).scalar()
            return 0 if current is None else int(current) + 1

    def insert_video(self, video: EventVideo) -> EventVideo:
        with self._guard("insert_video"):
            self.db.add(video)
            self.db.commit()
            self.db.refresh(video)
            return video

    def delete_video(self, video_id: str) -> bool:
        with self._guard("delete_video"):
            video = self.db.get(EventVideo, video_id)
            if video is None:
                return False
            self.db.delete(video)
            self.db.commit()
            return True

    # Redirects

    def insert_redirect(self, old_slug: str, new_slug: str, event_id: str) -> UrlRedirect:
        with self._guard("insert_redirect"):
            redirect = UrlRedirect(OldSlug=old_slug, NewSlug=new_slug, EventID=event_id)
            self.db.add(redirect)
            self.db.commit()
            return redirect

    def latest_redirect_for(self, old_slug: str) -> Optional[UrlRedirect]:
        with self._guard("latest_redirect_for"):
            stmt = (
                select(UrlRedirect)
                .where(UrlRedirect.OldSlug == old_slug)
                .order_by(UrlRedirect.RedirectID.desc())
                .limit(1)
            )
            return self.db.execute(stmt).scalars().first()

    # Error log

    def append_error_log(self, entry: EventErrorLog) -> None:
        with self._guard("append_error_log"):
            self.db.add(entry)
            self.db.commit()

    def query_error_logs(
        self,
        limit: Optional[int] = 50,
        error_type: Optional[str] = None,
        event_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[EventErrorLog]:
        with self._guard("query_error_logs"):
            stmt = select(EventErrorLog)
            if error_type:
                stmt = stmt.where(EventErrorLog.ErrorType == error_type)
            if event_id:
                stmt = stmt.where(EventErrorLog.EventID == event_id)
            if since is not None:
                stmt = stmt.where(EventErrorLog.CreatedAt >= since)
            stmt = stmt.order_by(EventErrorLog.CreatedAt.desc(), EventErrorLog.ErrorLogID.desc())
            if limit:
                stmt = stmt.limit(limit)
            return list(self.db.execute(stmt).scalars().all())

    def count_error_logs_by_type(self, since: Optional[datetime] = None) -> Dict[str, int]:
        with self._guard("count_error_logs_by_type"):
            stmt = select(EventErrorLog.ErrorType, func.count()).group_by(EventErrorLog.ErrorType)
            if since is not None:
                stmt = stmt.where(EventErrorLog.CreatedAt >= since)
            return {str(t): int(n) for t, n in self.db.execute(stmt).all()}
