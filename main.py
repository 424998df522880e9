import logging
import time
import uuid
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from starlette.middleware.gzip import GZipMiddleware
from starlette.responses import JSONResponse

from app.api import event_errors, event_media
from app.core.logging_utils import configure_logging
from app.core.settings import settings
from app.models import Base
from app.services.object_store import LocalObjectStore, build_object_store
from db import engine

try:
    import sentry_sdk  # type: ignore
    from sentry_sdk.integrations.starlette import StarletteIntegration  # type: ignore
except Exception:
    sentry_sdk = None  # type: ignore

load_dotenv()


app = FastAPI()
app.add_middleware(GZipMiddleware, minimum_size=500)

# Configure logging (console + rotating file; JSON by default)
configure_logging(settings)
logger = logging.getLogger("app")

# One object store for the life of the process; routes receive it via app.state
object_store = build_object_store(settings)
app.state.object_store = object_store

if isinstance(object_store, LocalObjectStore):
    app.mount(
        "/storage",
        StaticFiles(directory=object_store.base_dir, check_dir=False),
        name="storage",
    )

# The local SQLite fallback has no migration tooling; create its tables in place
if engine.dialect.name == "sqlite":
    Base.metadata.create_all(bind=engine)

# Initialize Sentry if DSN provided
if getattr(settings, "SENTRY_DSN", "") and sentry_sdk is not None:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[StarletteIntegration()],
        traces_sample_rate=float(getattr(settings, "SENTRY_TRACES_SAMPLE_RATE", 0.0) or 0.0),
        send_default_pii=False,
    )

app.include_router(event_media.router)
app.include_router(event_errors.router)


# Request logging middleware with request id
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start = time.perf_counter()
    duration_ms: Optional[int] = None
    request.state.request_id = request_id

    extra_ctx = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }
    logger.info("request.start", extra=extra_ctx)
    try:
        response = await call_next(request)
    except Exception:
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.exception("request.error", extra={**extra_ctx, "duration_ms": duration_ms})
        # Re-raise to be handled by 500 handler
        raise

    duration_ms = int((time.perf_counter() - start) * 1000)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "request.end",
        extra={**extra_ctx, "status_code": response.status_code, "duration_ms": duration_ms},
    )
    return response


@app.exception_handler(500)
async def server_error_handler(request: Request, exc):
    request_id = getattr(request.state, "request_id", None)
    resp = JSONResponse(
        {"ok": False, "error": "Internal Server Error", "request_id": request_id},
        status_code=500,
    )
    if request_id:
        resp.headers["X-Request-ID"] = str(request_id)
    return resp
