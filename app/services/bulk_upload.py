import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Sequence

from app.services.image_variants import (
    PROCESSING_FAILED,
    ImageFile,
    ImageUploadResult,
    ImageVariantPipeline,
)

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


@dataclass
class UploadProgress:
    file_index: int
    file_name: str
    progress: int = 0
    status: str = STATUS_PENDING
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "fileIndex": self.file_index,
            "fileName": self.file_name,
            "progress": self.progress,
            "status": self.status,
        }
        if self.error:
            out["error"] = self.error
        return out


BatchProgressCallback = Callable[[List[UploadProgress]], None]


class BulkUploadOrchestrator:
    """Runs the image pipeline over a batch, one file at a time.

    A failed file is recorded and the batch moves on; callers check each
    result's ``success`` flag. Files are not uploaded in parallel because
    display order allocation already serialises uploads to one event.
    """

    def __init__(self, pipeline: ImageVariantPipeline):
        self.pipeline = pipeline

    def upload_many(
        self,
        files: Sequence[ImageFile],
        event_id: str,
        event_slug: str,
        on_progress: Optional[BatchProgressCallback] = None,
        alt_text: str = "",
    ) -> List[ImageUploadResult]:
        entries = [UploadProgress(i, f.file_name) for i, f in enumerate(files)]

        def publish() -> None:
            if on_progress is None:
                return
            try:
                on_progress([replace(e) for e in entries])
            except Exception:
                logger.warning("bulk_upload.progress_callback_failed", exc_info=True)

        results: List[ImageUploadResult] = []
        for index, upload in enumerate(files):
            entry = entries[index]
            entry.status = STATUS_PROCESSING
            publish()

            def on_file_progress(value: int, entry: UploadProgress = entry) -> None:
                entry.progress = value
                publish()

            try:
                result = self.pipeline.upload_event_image(
                    upload,
                    event_id,
                    event_slug,
                    alt_text=alt_text,
                    sequence=index,
                    on_progress=on_file_progress,
                )
            except Exception:
                # One bad file must not cost the rest of the batch
                logger.exception(
                    "bulk_upload.file_crashed",
                    extra={
                        "event_id": event_id,
                        "file_index": index,
                        "file_name": upload.file_name,
                    },
                )
                result = ImageUploadResult(False, error=PROCESSING_FAILED)
            results.append(result)

            if result.success:
                entry.status = STATUS_COMPLETED
                entry.progress = 100
            else:
                entry.status = STATUS_FAILED
                entry.error = result.error
            publish()

        logger.info(
            "bulk_upload.finished",
            extra={
                "event_id": event_id,
                "total": len(results),
                "failed": sum(1 for r in results if not r.success),
            },
        )
        return results
