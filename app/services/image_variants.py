"""Event gallery ingestion: one uploaded image becomes three JPEG variants
(small/medium/large) in object storage plus exactly one EventImage row.

The steps run in a fixed order: validate, resize, upload small, medium,
large, allocate display order, insert row. Each failure after the first
object write deletes the objects already written, so storage never holds a
partial variant set and no row points at missing objects.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional, Sequence

from PIL import Image, ImageOps

from app.core.event_constants import (
    IMAGE_SIZES,
    SIZE_FOLDERS,
    VARIANT_CONTENT_TYPE,
    event_image_path,
)
from app.core.settings import settings
from app.models.event import EventImage
from app.services.content_store import ContentStore, ContentStoreError
from app.services.error_sink import ErrorSink
from app.services.object_store import ObjectStore, ObjectStoreError

logger = logging.getLogger(__name__)
audit = logging.getLogger("audit")

ProgressCallback = Callable[[int], None]

# Progress reported after validation, identity, each resize, each upload.
_P_VALIDATED, _P_IDENTITY = 10, 20
_P_RESIZED = (35, 50, 65)
_P_UPLOADED = (75, 85, 90)

PROCESSING_FAILED = "Failed to process image"
UPLOAD_FAILED = "Failed to upload image"
SAVE_FAILED = "Failed to save image"


@dataclass
class ImageFile:
    file_name: str
    content_type: str
    data: bytes


@dataclass
class ImageUrls:
    small: str
    medium: str
    large: str

    def as_dict(self) -> Dict[str, str]:
        return {"small": self.small, "medium": self.medium, "large": self.large}


@dataclass
class ImageUploadResult:
    success: bool
    image_id: Optional[str] = None
    urls: Optional[ImageUrls] = None
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.image_id:
            out["imageId"] = self.image_id
        if self.urls:
            out["urls"] = self.urls.as_dict()
        if self.error:
            out["error"] = self.error
        return out


def generate_image_filename(event_slug: str, sequence: int, now: Optional[float] = None) -> str:
    """Human-traceable name kept in object metadata; never used as a storage key."""
    millis = int((time.time() if now is None else now) * 1000)
    return f"{event_slug}-{millis}-{sequence}"


def _open_source(data: bytes) -> Image.Image:
    im = Image.open(BytesIO(data))
    im.load()
    im = ImageOps.exif_transpose(im)
    if im.mode in ("RGBA", "LA") or (im.mode == "P" and "transparency" in im.info):
        # Flatten transparency onto white; JPEG has no alpha channel
        rgba = im.convert("RGBA")
        flat = Image.new("RGB", rgba.size, (255, 255, 255))
        flat.paste(rgba, mask=rgba.getchannel("A"))
        return flat
    return im.convert("RGB")


def render_variant(source: Image.Image, width: int, quality: int) -> bytes:
    """Scale to exactly `width`, keeping aspect ratio, and encode as JPEG."""
    if not source.width or not source.height:
        raise ValueError("Image has no pixels")
    height = max(1, int(source.height * width / float(source.width)))
    resized = source.resize((int(width), height), Image.Resampling.LANCZOS)
    buf = BytesIO()
    resized.save(buf, format="JPEG", quality=int(quality), optimize=True, progressive=True)
    return buf.getvalue()


def _normalize_content_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def _mb_label(n_bytes: int) -> str:
    return f"{n_bytes / (1024 * 1024):g}MB"


class ImageVariantPipeline:
    def __init__(
        self,
        store: ContentStore,
        objects: ObjectStore,
        error_sink: Optional[ErrorSink] = None,
        max_file_bytes: Optional[int] = None,
        allowed_types: Optional[Sequence[str]] = None,
        max_images_per_event: Optional[int] = None,
        jpeg_quality: Optional[int] = None,
    ):
        self.store = store
        self.objects = objects
        self.errors = error_sink or ErrorSink(store)
        self.max_file_bytes = int(max_file_bytes or settings.MAX_IMAGE_FILE_BYTES)
        self.allowed_types = tuple(allowed_types or settings.ALLOWED_IMAGE_MIME_TYPES)
        self.max_images = int(max_images_per_event or settings.MAX_IMAGES_PER_EVENT)
        self.quality = int(jpeg_quality or settings.IMAGE_JPEG_QUALITY)

    def validate_image_file(self, upload: ImageFile, event_id: str) -> Optional[str]:
        """Return a user-facing error, or None when the file may be ingested."""
        size = len(upload.data)
        if size > self.max_file_bytes:
            self.errors.log_validation_error(
                "file_size", size, f"File size {size} exceeds {self.max_file_bytes}", event_id
            )
            return f"File size must be less than {_mb_label(self.max_file_bytes)}"

        content_type = _normalize_content_type(upload.content_type)
        if content_type not in self.allowed_types:
            self.errors.log_validation_error(
                "file_type", upload.content_type, "Invalid file type", event_id
            )
            return "Only JPEG, PNG, WebP, and GIF images are allowed"

        try:
            existing = self.store.count_event_images(event_id)
        except ContentStoreError as exc:
            self.errors.log_database_error(exc.operation, exc, {"event_id": event_id})
            return "Could not check the event's image count"
        if existing >= self.max_images:
            self.errors.log_validation_error(
                "max_images", existing, f"Event already has {existing} images", event_id
            )
            return f"Maximum {self.max_images} images per event"
        return None

    def upload_event_image(
        self,
        upload: ImageFile,
        event_id: str,
        event_slug: str,
        alt_text: str = "",
        sequence: int = 0,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ImageUploadResult:
        last = [0]

        def report(value: int) -> None:
            if on_progress is None or value < last[0]:
                return
            last[0] = value
            try:
                on_progress(value)
            except Exception:
                # A failing listener must not interrupt a half-written upload
                logger.warning("image.progress_callback_failed", exc_info=True)

        report(0)
        problem = self.validate_image_file(upload, event_id)
        if problem:
            return ImageUploadResult(False, error=problem)
        report(_P_VALIDATED)

        image_id = str(uuid.uuid4())
        source_name = generate_image_filename(event_slug, sequence)
        report(_P_IDENTITY)

        variants: Dict[str, bytes] = {}
        current = None
        try:
            source = _open_source(upload.data)
            for size, checkpoint in zip(IMAGE_SIZES, _P_RESIZED):
                current = size.folder
                variants[size.folder] = render_variant(source, size.width, self.quality)
                report(checkpoint)
        except Exception as exc:
            # Pillow raises OSError, SyntaxError, struct.error and others for corrupt input
            self.errors.log_processing_error(upload.file_name, exc, event_id, current)
            return ImageUploadResult(False, error=PROCESSING_FAILED)

        written: List[str] = []
        urls: Dict[str, str] = {}
        for size, checkpoint in zip(IMAGE_SIZES, _P_UPLOADED):
            key = event_image_path(event_id, image_id, size.folder)
            try:
                self.objects.put(
                    key,
                    variants[size.folder],
                    VARIANT_CONTENT_TYPE,
                    metadata={"source-name": source_name},
                )
            except ObjectStoreError as exc:
                self._rollback(written, event_id)
                self.errors.log_upload_error(upload.file_name, exc, event_id)
                return ImageUploadResult(False, error=UPLOAD_FAILED)
            written.append(key)
            urls[size.folder] = self.objects.public_url(key)
            report(checkpoint)

        try:
            order = self.store.next_image_display_order(event_id)
            self.store.insert_image_asset(
                EventImage(
                    ImageID=image_id,
                    EventID=event_id,
                    ImageUrlSmall=urls["small"],
                    ImageUrlMedium=urls["medium"],
                    ImageUrlLarge=urls["large"],
                    AltText=alt_text or None,
                    DisplayOrder=order,
                )
            )
        except ContentStoreError as exc:
            self._rollback(written, event_id)
            self.errors.log_database_error(
                exc.operation, exc, {"event_id": event_id, "image_id": image_id}
            )
            return ImageUploadResult(False, error=SAVE_FAILED)

        report(100)
        audit.info(
            "event.image.uploaded",
            extra={
                "event_id": event_id,
                "image_id": image_id,
                "display_order": order,
                "source_name": source_name,
            },
        )
        return ImageUploadResult(True, image_id=image_id, urls=ImageUrls(**urls))

    def _rollback(self, keys: List[str], event_id: str) -> None:
        for key in keys:
            try:
                self.objects.delete(key)
            except ObjectStoreError as exc:
                # The original failure is what the caller sees
                self.errors.log_storage_error("rollback_delete", exc, key, event_id)

    def _keys_for(self, asset: EventImage) -> List[str]:
        urls = (asset.ImageUrlSmall, asset.ImageUrlMedium, asset.ImageUrlLarge)
        return [
            self.objects.key_for_url(url) or event_image_path(asset.EventID, asset.ImageID, folder)
            for folder, url in zip(SIZE_FOLDERS, urls)
        ]

    def delete_event_image(self, image_id: str, event_id: str) -> bool:
        """Remove the three objects (best-effort), then the row.

        Returns False when the row could not be found or deleted; the caller
        may retry. Storage failures are logged and do not stop the row delete.
        """
        try:
            asset = self.store.get_image_asset(image_id)
        except ContentStoreError as exc:
            self.errors.log_storage_error("fetch_image_data", exc, event_id=event_id)
            return False
        if asset is None or asset.EventID != event_id:
            self.errors.log_storage_error(
                "fetch_image_data", LookupError(f"Image {image_id} not found"), event_id=event_id
            )
            return False

        for key in self._keys_for(asset):
            try:
                self.objects.delete(key)
            except ObjectStoreError as exc:
                self.errors.log_storage_error("delete_images", exc, key, event_id)

        try:
            self.store.delete_image_asset(image_id)
        except ContentStoreError as exc:
            self.errors.log_storage_error("delete_database_record", exc, event_id=event_id)
            return False
        audit.info("event.image.deleted", extra={"event_id": event_id, "image_id": image_id})
        return True

    def get_event_image_urls(self, image_id: str) -> Optional[ImageUrls]:
        asset = self.store.get_image_asset(image_id)
        if asset is None:
            return None
        return ImageUrls(
            small=asset.ImageUrlSmall, medium=asset.ImageUrlMedium, large=asset.ImageUrlLarge
        )
