"""
Video sources for the frame loop.

To add a new video source:
1. Inherit from VideoSource
2. Implement start(), stop(), read() and resolution
3. Raise a CameraError subclass from start() when the device can't be used

Failure categories:
- permission_denied, not_found, busy: terminal, reported as-is
- aborted: transient, retried by acquire_camera() a bounded number of times
"""

import logging
import os
import sys
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from filtercam import config

logger = logging.getLogger(__name__)


# ============================================================================
# Errors
# ============================================================================

class CameraError(Exception):
    """Base class for camera acquisition failures."""
    category = "unknown"
    retryable = False
    default_message = "Unable to access the camera. Please make sure you have granted permission."

    def __init__(self, message: Optional[str] = None, device: Optional[int] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.device = device


class CameraPermissionDenied(CameraError):
    category = "permission_denied"
    default_message = "Camera access denied. Please allow camera access and try again."


class CameraNotFound(CameraError):
    category = "not_found"
    default_message = "No camera found. Please make sure your device has a working camera."


class CameraBusy(CameraError):
    category = "busy"
    default_message = "Camera is in use by another application. Please close other apps using the camera."


class CameraAborted(CameraError):
    category = "aborted"
    retryable = True
    default_message = "Camera initialization failed."


# ============================================================================
# Source Interface
# ============================================================================

class VideoSource(ABC):
    """
    Abstract video input.

    Sources hand out BGR frames (OpenCV order). read() must not block
    for long and returns None once the stream is gone.
    """

    @abstractmethod
    def start(self) -> None:
        """Acquire the device. Raises CameraError on failure."""

    @abstractmethod
    def stop(self) -> None:
        """Release the device. Safe to call more than once."""

    @abstractmethod
    def read(self) -> Optional[np.ndarray]:
        """Latest BGR frame of shape (H, W, 3), or None if the stream ended."""

    @property
    @abstractmethod
    def resolution(self) -> Tuple[int, int]:
        """(width, height) of delivered frames."""

    @property
    def is_running(self) -> bool:
        return False

    def get_device_info(self) -> dict:
        return {"device": "unknown"}


class WebcamSource(VideoSource):
    """
    Local webcam through cv2.VideoCapture.

    The capture buffer is kept at one frame, so a slow consumer gets the
    newest frame and older ones are dropped rather than queued.
    """

    def __init__(
        self,
        device: int = config.CAMERA_DEVICE,
        width: int = config.CAMERA_WIDTH,
        height: int = config.CAMERA_HEIGHT,
        facing_mode: str = config.CAMERA_FACING_MODE,
    ):
        self.device = device
        self.requested_size = (width, height)
        self.facing_mode = facing_mode
        self.cap: Optional[cv2.VideoCapture] = None
        self._resolution = (0, 0)

    def _check_device_node(self) -> None:
        """On Linux the V4L2 node tells us 'missing' from 'not allowed'."""
        if not sys.platform.startswith("linux"):
            return
        node = f"/dev/video{self.device}"
        if not os.path.exists(node):
            raise CameraNotFound(device=self.device)
        if not os.access(node, os.R_OK | os.W_OK):
            raise CameraPermissionDenied(device=self.device)

    def start(self) -> None:
        self._check_device_node()

        logger.info("Opening webcam %d (%dx%d, facing=%s)", self.device, *self.requested_size, self.facing_mode)
        cap = cv2.VideoCapture(self.device)
        if not cap.isOpened():
            cap.release()
            raise CameraAborted(f"Could not open webcam {self.device}", device=self.device)

        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.requested_size[0])
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.requested_size[1])
        cap.set(cv2.CAP_PROP_FPS, 30)

        ok, frame = cap.read()
        if not ok or frame is None:
            cap.release()
            raise CameraBusy(device=self.device)

        self.cap = cap
        self._resolution = (frame.shape[1], frame.shape[0])
        logger.info("Webcam %d opened at %dx%d", self.device, *self._resolution)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            logger.info("Webcam %d released", self.device)

    def read(self) -> Optional[np.ndarray]:
        if self.cap is None:
            return None
        ok, frame = self.cap.read()
        if not ok or frame is None:
            return None
        return frame

    @property
    def resolution(self) -> Tuple[int, int]:
        return self._resolution

    @property
    def is_running(self) -> bool:
        return self.cap is not None

    def get_device_info(self) -> dict:
        return {
            "device": f"Webcam {self.device}",
            "resolution": f"{self._resolution[0]}x{self._resolution[1]}",
            "facing_mode": self.facing_mode,
        }


# ============================================================================
# Acquisition
# ============================================================================

def acquire_camera(
    source: VideoSource,
    attempts: int = config.CAMERA_RETRY_ATTEMPTS,
    delay: float = config.CAMERA_RETRY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> VideoSource:
    """
    Start a source, retrying transient failures.

    Only CameraAborted is retried, up to `attempts` tries in total with a
    fixed `delay` between them. Any other CameraError is raised at once.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    for attempt in range(1, attempts + 1):
        try:
            source.start()
            return source
        except CameraError as e:
            if not e.retryable or attempt == attempts:
                logger.error("Camera acquisition failed (%s): %s", e.category, e.message)
                raise
            logger.warning("Camera initialization failed (attempt %d/%d), retrying...", attempt, attempts)
            sleep(delay)

    raise AssertionError("unreachable")
