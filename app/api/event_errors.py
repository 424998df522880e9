from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from app.core.dependencies import get_content_store
from app.core.event_constants import ErrorType
from app.services.content_store import ContentStore
from app.services.error_sink import error_summary, errors_by_type, errors_for_event, recent_errors

router = APIRouter()


@router.get("/admin/event-errors", response_class=JSONResponse)
def list_event_errors(
    error_type: Optional[str] = None,
    event_id: Optional[str] = None,
    limit: int = 50,
    store: ContentStore = Depends(get_content_store),
):
    """Newest-first event pipeline errors, optionally filtered by type or event."""
    if event_id:
        rows = errors_for_event(store, event_id)
    elif error_type:
        try:
            rows = errors_by_type(store, ErrorType(error_type), limit)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown error type: {error_type}")
    else:
        rows = recent_errors(store, limit)
    return JSONResponse({"ok": True, "errors": rows})


@router.get("/admin/event-errors/summary", response_class=JSONResponse)
def event_error_summary(store: ContentStore = Depends(get_content_store)):
    return JSONResponse({"ok": True, **error_summary(store)})
