"""Dependencies for FastAPI routes."""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.services.bulk_upload import BulkUploadOrchestrator
from app.services.content_store import ContentStore
from app.services.error_sink import ErrorSink
from app.services.image_variants import ImageVariantPipeline
from app.services.object_store import ObjectStore
from app.services.slugs import SlugResolver
from db import get_db


async def get_object_store(request: Request) -> ObjectStore:
    """Provide the process-wide object store built at startup."""
    return request.app.state.object_store


def get_content_store(db: Session = Depends(get_db)) -> ContentStore:
    return ContentStore(db)


def get_error_sink(store: ContentStore = Depends(get_content_store)) -> ErrorSink:
    return ErrorSink(store)


def get_slug_resolver(
    store: ContentStore = Depends(get_content_store),
    errors: ErrorSink = Depends(get_error_sink),
) -> SlugResolver:
    return SlugResolver(store, errors)


def get_image_pipeline(
    store: ContentStore = Depends(get_content_store),
    objects: ObjectStore = Depends(get_object_store),
    errors: ErrorSink = Depends(get_error_sink),
) -> ImageVariantPipeline:
    return ImageVariantPipeline(store, objects, errors)


def get_bulk_uploader(
    pipeline: ImageVariantPipeline = Depends(get_image_pipeline),
) -> BulkUploadOrchestrator:
    return BulkUploadOrchestrator(pipeline)
