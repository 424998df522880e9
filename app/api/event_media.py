"""Event media and slug endpoints used by the event editor."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from app.core.dependencies import (
    get_bulk_uploader,
    get_content_store,
    get_error_sink,
    get_image_pipeline,
    get_slug_resolver,
)
from app.services.bulk_upload import BulkUploadOrchestrator, UploadProgress
from app.services.content_store import ContentStore, ContentStoreError
from app.services.error_sink import ErrorSink
from app.services.image_variants import ImageFile, ImageVariantPipeline
from app.services.slugs import SlugResolver
from app.services.videos import add_event_video, remove_event_video

router = APIRouter()
logger = logging.getLogger(__name__)
audit = logging.getLogger("audit")


def _require_event(store: ContentStore, event_id: str):
    try:
        event = store.get_event(event_id)
    except ContentStoreError:
        raise HTTPException(status_code=503, detail="Content store unavailable")
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


# Slugs


@router.get("/events/slugs/generate", response_class=JSONResponse)
def generate_slug(title: str = "", slugs: SlugResolver = Depends(get_slug_resolver)):
    return JSONResponse({"slug": slugs.generate_slug_from_title(title)})


@router.get("/events/slugs/validate", response_class=JSONResponse)
def validate_slug(
    slug: str = "",
    event_id: Optional[str] = None,
    slugs: SlugResolver = Depends(get_slug_resolver),
):
    return JSONResponse(slugs.validate_slug(slug, event_id).to_payload())


@router.put("/events/{event_id}/slug", response_class=JSONResponse)
def save_slug(
    event_id: str,
    slug: str = Form(...),
    updated_by: Optional[str] = Form(None),
    slugs: SlugResolver = Depends(get_slug_resolver),
):
    result = slugs.save_event_slug(event_id, slug, updated_by)
    if result.success:
        return JSONResponse(
            {
                "ok": True,
                "slug": result.slug,
                "previousSlug": result.previous_slug,
                "redirectCreated": result.redirect_created,
            }
        )
    if result.conflict:
        status = 409
    elif result.error == "Event not found":
        status = 404
    elif result.error == "Failed to save slug":
        status = 503
    else:
        status = 400
    payload = {"ok": False, "error": result.error}
    if result.suggestion:
        payload["suggestion"] = result.suggestion
    return JSONResponse(payload, status_code=status)


@router.get("/events/by-slug/{slug}", response_class=JSONResponse)
def resolve_slug(slug: str, slugs: SlugResolver = Depends(get_slug_resolver)):
    try:
        found = slugs.resolve_slug(slug)
        tags = slugs.store.list_event_tags(found.event_id) if found else []
    except ContentStoreError:
        raise HTTPException(status_code=503, detail="Content store unavailable")
    if found is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return JSONResponse(
        {
            "eventId": found.event_id,
            "slug": found.slug,
            "redirected": found.redirected,
            "tags": [{"name": t.Name, "slug": t.Slug} for t in tags],
        }
    )


# Gallery images


@router.post("/events/{event_id}/images", response_class=JSONResponse)
def upload_images(
    event_id: str,
    files: List[UploadFile] = File(...),
    alt_text: str = Form(""),
    store: ContentStore = Depends(get_content_store),
    uploader: BulkUploadOrchestrator = Depends(get_bulk_uploader),
):
    event = _require_event(store, event_id)
    batch = [
        ImageFile(
            file_name=f.filename or f"file-{i}",
            content_type=f.content_type or "",
            data=f.file.read(),
        )
        for i, f in enumerate(files)
    ]
    snapshot: List[UploadProgress] = []

    def keep_latest(entries: List[UploadProgress]) -> None:
        snapshot[:] = entries

    results = uploader.upload_many(
        batch, event_id, event.Slug, on_progress=keep_latest, alt_text=alt_text
    )
    uploaded = sum(1 for r in results if r.success)
    audit.info(
        "event.images.batch",
        extra={"event_id": event_id, "uploaded": uploaded, "failed": len(results) - uploaded},
    )
    return JSONResponse(
        {
            "ok": True,
            "uploaded": uploaded,
            "failed": len(results) - uploaded,
            "results": [r.to_payload() for r in results],
            "progress": [p.to_payload() for p in snapshot],
        }
    )


@router.get("/events/{event_id}/images/{image_id}", response_class=JSONResponse)
def image_urls(
    event_id: str,
    image_id: str,
    pipeline: ImageVariantPipeline = Depends(get_image_pipeline),
):
    try:
        urls = pipeline.get_event_image_urls(image_id)
    except ContentStoreError:
        raise HTTPException(status_code=503, detail="Content store unavailable")
    if urls is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return JSONResponse({"ok": True, "imageId": image_id, "urls": urls.as_dict()})


@router.delete("/events/{event_id}/images/{image_id}", response_class=JSONResponse)
def delete_image(
    event_id: str,
    image_id: str,
    pipeline: ImageVariantPipeline = Depends(get_image_pipeline),
):
    if pipeline.delete_event_image(image_id, event_id):
        return JSONResponse({"ok": True})
    return JSONResponse({"ok": False, "error": "Failed to delete image"}, status_code=409)


# Videos


@router.post("/events/{event_id}/videos", response_class=JSONResponse)
def add_video(
    event_id: str,
    url: str = Form(""),
    store: ContentStore = Depends(get_content_store),
    errors: ErrorSink = Depends(get_error_sink),
):
    _require_event(store, event_id)
    result = add_event_video(store, event_id, url, errors)
    return JSONResponse(result.to_payload(), status_code=200 if result.success else 400)


@router.delete("/events/{event_id}/videos/{video_id}", response_class=JSONResponse)
def delete_video(
    event_id: str,
    video_id: str,
    store: ContentStore = Depends(get_content_store),
    errors: ErrorSink = Depends(get_error_sink),
):
    if remove_event_video(store, video_id, errors):
        return JSONResponse({"ok": True})
    return JSONResponse({"ok": False, "error": "Video not found"}, status_code=404)
