"""YouTube video attachments for events."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.core.event_constants import extract_youtube_video_id, youtube_embed_url
from app.core.settings import settings
from app.models.event import EventVideo
from app.services.content_store import ContentStore, ContentStoreError
from app.services.error_sink import ErrorSink

logger = logging.getLogger(__name__)


@dataclass
class VideoResult:
    success: bool
    video_id: Optional[str] = None
    youtube_video_id: Optional[str] = None
    embed_url: Optional[str] = None
    display_order: Optional[int] = None
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "videoId": self.video_id,
            "youtubeVideoId": self.youtube_video_id,
            "embedUrl": self.embed_url,
            "displayOrder": self.display_order,
        }


def add_event_video(
    store: ContentStore,
    event_id: str,
    url: str,
    error_sink: Optional[ErrorSink] = None,
    max_videos: Optional[int] = None,
) -> VideoResult:
    errors = error_sink or ErrorSink(store)
    limit = int(max_videos or settings.MAX_VIDEOS_PER_EVENT)
    url = (url or "").strip()
    if not url:
        return VideoResult(False, error="Please enter a YouTube URL")

    youtube_id = extract_youtube_video_id(url)
    if youtube_id is None:
        errors.log_youtube_url_error(url, event_id)
        return VideoResult(False, error="Please enter a valid YouTube URL")

    try:
        if store.count_event_videos(event_id) >= limit:
            return VideoResult(False, error=f"Maximum {limit} videos per event")
        video = store.insert_video(
            EventVideo(
                EventID=event_id,
                YoutubeUrl=url,
                YoutubeVideoID=youtube_id,
                DisplayOrder=store.next_video_display_order(event_id),
            )
        )
    except ContentStoreError as exc:
        errors.log_database_error(exc.operation, exc, {"event_id": event_id, "youtube_url": url})
        return VideoResult(False, error="Failed to add video")

    return VideoResult(
        True,
        video_id=video.VideoID,
        youtube_video_id=youtube_id,
        embed_url=youtube_embed_url(youtube_id),
        display_order=video.DisplayOrder,
    )


def remove_event_video(
    store: ContentStore, video_id: str, error_sink: Optional[ErrorSink] = None
) -> bool:
    try:
        return store.delete_video(video_id)
    except ContentStoreError as exc:
        (error_sink or ErrorSink(store)).log_database_error(
            exc.operation, exc, {"video_id": video_id}
        )
        return False
