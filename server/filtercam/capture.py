"""
Photo capture from the live filtered surface.

capture() freezes whatever the frame loop last presented and encodes it
as JPEG. It reads a copy, so the loop keeps running. Uploading goes to a
thread pool and can be cancelled; failures are reported, never retried.
"""

import io
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import numpy as np
from PIL import Image
from pydantic import BaseModel, ConfigDict

from filtercam import config
from filtercam.models import ErrorCode, PhotoRecord
from filtercam.pixel_buffer import PixelBuffer
from filtercam.services import PhotoStore

logger = logging.getLogger(__name__)


class CaptureError(Exception):
    """Nothing can be captured right now (no frame yet, no filter selected)."""

    def __init__(self, message: str, error_code: str = ErrorCode.NO_FRAME_AVAILABLE):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


def encode_jpeg(buffer: PixelBuffer, quality: int = config.JPEG_QUALITY) -> bytes:
    """JPEG has no alpha, so the surface is flattened to RGB first."""
    img = Image.fromarray(buffer.data).convert("RGB")
    output_buffer = io.BytesIO()
    img.save(output_buffer, format="JPEG", quality=quality)
    return output_buffer.getvalue()


class CapturedPhoto(BaseModel):
    """An immutable snapshot of the filtered surface."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    pixels: np.ndarray
    image_bytes: bytes
    filter_id: str
    description: Optional[str] = None
    captured_at: datetime
    width: int
    height: int

    content_type: str = "image/jpeg"


class UploadState(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


class PhotoUpload:
    """Handle on an in-flight upload."""

    def __init__(self, photo: CapturedPhoto, future: Future):
        self.photo = photo
        self._future = future

    @property
    def state(self) -> UploadState:
        if self._future.cancelled():
            return UploadState.CANCELLED
        if not self._future.done():
            return UploadState.PENDING
        if self._future.exception() is not None:
            return UploadState.FAILURE
        return UploadState.SUCCESS

    @property
    def error(self) -> Optional[BaseException]:
        if self._future.done() and not self._future.cancelled():
            return self._future.exception()
        return None

    def cancel(self) -> bool:
        """Only uploads that haven't started yet can be cancelled."""
        return self._future.cancel()

    def result(self, timeout: Optional[float] = None) -> PhotoRecord:
        return self._future.result(timeout)

    def add_done_callback(self, fn: Callable[["PhotoUpload"], None]) -> None:
        self._future.add_done_callback(lambda _: fn(self))


class CaptureController:
    """Takes snapshots from a frame loop and hands them to a photo store."""

    def __init__(
        self,
        frame_loop,
        store: PhotoStore,
        quality: int = config.JPEG_QUALITY,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.frame_loop = frame_loop
        self.store = store
        self.quality = quality
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.UPLOAD_WORKERS, thread_name_prefix="photo-upload"
        )

    def capture(self, description: Optional[str] = None) -> CapturedPhoto:
        filter_id = self.frame_loop.active_filter_id
        if filter_id is None:
            raise CaptureError("Select a filter before taking a photo", ErrorCode.NO_FILTER_SELECTED)

        snapshot = self.frame_loop.snapshot()
        if snapshot is None:
            raise CaptureError("No frame has been processed yet", ErrorCode.NO_FRAME_AVAILABLE)

        pixels = snapshot.data
        pixels.setflags(write=False)

        photo = CapturedPhoto(
            pixels=pixels,
            image_bytes=encode_jpeg(snapshot, self.quality),
            filter_id=filter_id,
            description=description or None,
            captured_at=datetime.now(timezone.utc),
            width=snapshot.width,
            height=snapshot.height,
        )
        logger.info("Captured %dx%d photo with filter %s", photo.width, photo.height, filter_id)
        return photo

    def upload(self, photo: CapturedPhoto) -> PhotoUpload:
        future = self._executor.submit(self.store.save, photo.image_bytes, photo.filter_id, photo.description)
        upload = PhotoUpload(photo, future)
        upload.add_done_callback(self._log_outcome)
        return upload

    def capture_and_upload(self, description: Optional[str] = None) -> PhotoUpload:
        return self.upload(self.capture(description))

    @staticmethod
    def _log_outcome(upload: PhotoUpload) -> None:
        state = upload.state
        if state is UploadState.FAILURE:
            logger.error("Photo upload failed: %s", upload.error)
        elif state is UploadState.CANCELLED:
            logger.info("Photo upload cancelled")

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
