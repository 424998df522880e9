"""Append-only error log for the event media pipeline.

Writes never raise: if the database write itself fails, the entry goes to
the process log instead so the caller's original failure is what surfaces.
"""
import json
import logging
import traceback
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

from app.core.event_constants import ErrorType
from app.models.logging import EventErrorLog
from app.services.content_store import ContentStore

logger = logging.getLogger(__name__)


def format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


class ErrorSink:
    def __init__(self, store: ContentStore):
        self.store = store

    def log_event_error(
        self,
        error_type: Union[ErrorType, str],
        message: str,
        context: Optional[Dict[str, Any]] = None,
        stack_trace: Optional[str] = None,
    ) -> None:
        context = dict(context or {})
        try:
            etype = ErrorType(error_type).value
        except ValueError:
            logger.error(
                "event_error_log.unknown_type",
                extra={"error_type": str(error_type), "error_message": message},
            )
            return
        event_id = context.get("event_id")
        try:
            self.store.append_error_log(
                EventErrorLog(
                    ErrorType=etype,
                    ErrorMessage=message,
                    ContextData=context,
                    StackTrace=stack_trace,
                    EventID=str(event_id) if event_id else None,
                )
            )
        except Exception:
            # Never let logging mask the error being reported
            logger.exception(
                "event_error_log.write_failed",
                extra={"error_type": etype, "error_message": message, "context_data": context},
            )

    def log_upload_error(self, file_name: str, error: BaseException, event_id: Optional[str] = None):
        self.log_event_error(
            ErrorType.UPLOAD_FAILED,
            f"Failed to upload file: {file_name}",
            {"file_name": file_name, "event_id": event_id, "error_name": type(error).__name__},
            format_stack(error),
        )

    def log_processing_error(
        self,
        file_name: str,
        error: BaseException,
        event_id: Optional[str] = None,
        size: Optional[str] = None,
    ):
        self.log_event_error(
            ErrorType.PROCESSING_FAILED,
            f"Failed to process image: {file_name}",
            {
                "file_name": file_name,
                "event_id": event_id,
                "size": size,
                "error_name": type(error).__name__,
            },
            format_stack(error),
        )

    def log_youtube_url_error(self, url: str, event_id: Optional[str] = None):
        self.log_event_error(
            ErrorType.INVALID_YOUTUBE_URL,
            f"Invalid YouTube URL: {url}",
            {"youtube_url": url, "event_id": event_id},
        )

    def log_database_error(
        self, operation: str, error: BaseException, context: Optional[Dict[str, Any]] = None
    ):
        self.log_event_error(
            ErrorType.DATABASE_ERROR,
            f"Database operation failed: {operation}",
            {"operation": operation, "error_name": type(error).__name__, **(context or {})},
            format_stack(error),
        )

    def log_storage_error(
        self,
        operation: str,
        error: BaseException,
        file_path: Optional[str] = None,
        event_id: Optional[str] = None,
    ):
        self.log_event_error(
            ErrorType.STORAGE_ERROR,
            f"Storage operation failed: {operation}",
            {
                "operation": operation,
                "file_path": file_path,
                "event_id": event_id,
                "error_name": type(error).__name__,
            },
            format_stack(error),
        )

    def log_validation_error(
        self, field: str, value: Any, reason: str, event_id: Optional[str] = None
    ):
        if isinstance(value, (dict, list, tuple)):
            value = json.dumps(value, default=str)
        self.log_event_error(
            ErrorType.VALIDATION_ERROR,
            f"Validation failed for {field}: {reason}",
            {"field": field, "value": value, "reason": reason, "event_id": event_id},
        )


def _entry_dict(e: EventErrorLog) -> Dict[str, Any]:
    created = getattr(e, "CreatedAt", None)
    return {
        "id": e.ErrorLogID,
        "error_type": e.ErrorType,
        "error_message": e.ErrorMessage,
        "context_data": e.ContextData or {},
        "stack_trace": e.StackTrace,
        "created_at": created.isoformat() if created else None,
    }


def recent_errors(store: ContentStore, limit: int = 50) -> List[Dict[str, Any]]:
    return [_entry_dict(e) for e in store.query_error_logs(limit=limit)]


def errors_by_type(
    store: ContentStore, error_type: Union[ErrorType, str], limit: int = 50
) -> List[Dict[str, Any]]:
    etype = ErrorType(error_type).value
    return [_entry_dict(e) for e in store.query_error_logs(limit=limit, error_type=etype)]


def errors_for_event(store: ContentStore, event_id: str) -> List[Dict[str, Any]]:
    return [_entry_dict(e) for e in store.query_error_logs(limit=None, event_id=event_id)]


def error_summary(store: ContentStore, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Return {"total", "by_type", "last_24_hours"} over the whole log."""
    now = now or datetime.now(timezone.utc)
    # CreatedAt is written by the database as naive UTC
    since = (now - timedelta(hours=24)).astimezone(timezone.utc).replace(tzinfo=None)
    by_type = store.count_error_logs_by_type()
    recent = store.count_error_logs_by_type(since=since)
    return {
        "total": sum(by_type.values()),
        "by_type": by_type,
        "last_24_hours": sum(recent.values()),
    }
