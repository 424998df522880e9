import pytest

from app.core.event_constants import extract_youtube_video_id, is_valid_youtube_url
from app.models.event import EventVideo
from app.models.logging import EventErrorLog
from app.services.videos import add_event_video, remove_event_video


@pytest.mark.parametrize(
    "url, video_id",
    [
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://youtube.com/embed/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("http://youtu.be/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
        ("https://www.youtube.com/v/abc_DEF-123?t=4", "abc_DEF-123"),
        ("https://vimeo.com/123456", None),
        ("youtube.com/watch?v=dQw4w9WgXcQ", None),
        ("https://www.youtube.com/watch?v=short", None),
    ],
)
def test_extract_youtube_video_id(url, video_id):
    assert extract_youtube_video_id(url) == video_id
    assert is_valid_youtube_url(url) is (video_id is not None)


def test_add_video_assigns_increasing_order(store, errors, event):
    first = add_event_video(store, event.EventID, "https://youtu.be/dQw4w9WgXcQ", errors)
    second = add_event_video(store, event.EventID, " https://youtu.be/aaaaaaaaaaa ", errors)
    assert first.success and second.success
    assert (first.display_order, second.display_order) == (0, 1)
    assert first.embed_url == "https://www.youtube.com/embed/dQw4w9WgXcQ"
    assert second.to_payload()["youtubeVideoId"] == "aaaaaaaaaaa"


def test_invalid_url_is_logged(store, errors, event, db_session):
    result = add_event_video(store, event.EventID, "https://example.com/clip", errors)
    assert result.error == "Please enter a valid YouTube URL"
    row = db_session.query(EventErrorLog).one()
    assert row.ErrorType == "invalid_youtube_url"
    assert row.EventID == event.EventID
    assert db_session.query(EventVideo).count() == 0


def test_empty_url(store, errors, event):
    assert add_event_video(store, event.EventID, "   ", errors).error == "Please enter a YouTube URL"


def test_video_limit(store, errors, event):
    for _ in range(3):
        assert add_event_video(store, event.EventID, "https://youtu.be/dQw4w9WgXcQ", errors, 3).success
    result = add_event_video(store, event.EventID, "https://youtu.be/dQw4w9WgXcQ", errors, 3)
    assert result.success is False
    assert result.error == "Maximum 3 videos per event"


def test_remove_video(store, errors, event, db_session):
    added = add_event_video(store, event.EventID, "https://youtu.be/dQw4w9WgXcQ", errors)
    assert remove_event_video(store, added.video_id, errors) is True
    assert remove_event_video(store, added.video_id, errors) is False
    assert db_session.query(EventVideo).count() == 0
