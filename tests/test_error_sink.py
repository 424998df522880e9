import logging
from datetime import datetime, timedelta, timezone

from app.core.event_constants import ErrorType
from app.models.logging import EventErrorLog
from app.services.content_store import ContentStoreError
from app.services.error_sink import (
    error_summary,
    errors_by_type,
    errors_for_event,
    recent_errors,
)


def test_log_event_error_persists_entry(errors, db_session):
    errors.log_event_error(
        ErrorType.UPLOAD_FAILED, "Failed to upload file: a.jpg", {"event_id": "ev-1", "x": 1}, "tb"
    )
    row = db_session.query(EventErrorLog).one()
    assert row.ErrorType == "upload_failed"
    assert row.ErrorMessage == "Failed to upload file: a.jpg"
    assert row.ContextData == {"event_id": "ev-1", "x": 1}
    assert row.StackTrace == "tb"
    assert row.EventID == "ev-1"
    assert row.CreatedAt is not None


def test_write_failure_is_swallowed_and_logged_locally(errors, store, monkeypatch, caplog):
    def _down(entry):
        raise ContentStoreError("append_error_log", RuntimeError("db down"))

    monkeypatch.setattr(store, "append_error_log", _down)
    with caplog.at_level(logging.ERROR, logger="app.services.error_sink"):
        errors.log_storage_error("delete_images", OSError("disk"), "events/x.jpg", "ev-1")
    assert any(r.message == "event_error_log.write_failed" for r in caplog.records)


def test_unknown_type_is_not_persisted(errors, db_session):
    errors.log_event_error("made_up", "whatever")
    assert db_session.query(EventErrorLog).count() == 0


def test_typed_wrappers_fill_context(errors, db_session):
    try:
        raise ValueError("cannot identify image file")
    except ValueError as exc:
        errors.log_processing_error("scan.png", exc, "ev-2", size="medium")
    errors.log_youtube_url_error("https://vimeo.com/1", "ev-2")
    errors.log_validation_error("file_size", 12_000_000, "too big", "ev-2")
    errors.log_database_error("insert_image_asset", RuntimeError("locked"), {"event_id": "ev-2"})

    rows = {r.ErrorType: r for r in db_session.query(EventErrorLog).all()}
    processing = rows["processing_failed"]
    assert processing.ContextData["size"] == "medium"
    assert processing.ContextData["error_name"] == "ValueError"
    assert "cannot identify image file" in processing.StackTrace
    assert rows["invalid_youtube_url"].ContextData["youtube_url"] == "https://vimeo.com/1"
    assert rows["validation_error"].ErrorMessage == "Validation failed for file_size: too big"
    assert rows["database_error"].ContextData["operation"] == "insert_image_asset"
    assert all(r.EventID == "ev-2" for r in rows.values())


def test_queries_and_summary(errors, store):
    errors.log_youtube_url_error("bad-1", "ev-1")
    errors.log_youtube_url_error("bad-2", "ev-2")
    errors.log_validation_error("file_type", "image/bmp", "Invalid file type", "ev-1")

    assert len(recent_errors(store, limit=2)) == 2
    assert {e["error_type"] for e in errors_by_type(store, "invalid_youtube_url")} == {
        "invalid_youtube_url"
    }
    assert len(errors_by_type(store, ErrorType.INVALID_YOUTUBE_URL)) == 2
    assert [e["context_data"]["event_id"] for e in errors_for_event(store, "ev-1")] == [
        "ev-1",
        "ev-1",
    ]

    summary = error_summary(store)
    assert summary["total"] == 3
    assert summary["by_type"] == {"invalid_youtube_url": 2, "validation_error": 1}
    assert summary["last_24_hours"] == 3

    later = error_summary(store, now=datetime.now(timezone.utc) + timedelta(days=2))
    assert later["total"] == 3
    assert later["last_24_hours"] == 0
