"""
Frame Processing Loop

Drives the live preview: read the newest camera frame, copy it into a
reusable drawing surface, run the active effect on it, present it.

Lifecycle: IDLE -> RUNNING -> STOPPED. A stopped loop has released its
camera and cannot be restarted; create a new loop instead.

Frames are processed one at a time on a single thread. If processing is
slower than the camera, the camera's one-frame buffer means stale frames
are dropped, never queued.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Iterator, Optional

import cv2
import numpy as np

from filtercam import config
from filtercam.camera import VideoSource, acquire_camera
from filtercam.dispatch import EffectRegistry
from filtercam.effects import EffectId
from filtercam.pixel_buffer import PixelBuffer

logger = logging.getLogger(__name__)

# Presenter receives the filtered frame; returning False stops the loop
Presenter = Callable[[PixelBuffer], Optional[bool]]


class LoopState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class FrameProcessingLoop:
    """
    Per-frame driver for one video source.

    The scratch buffer is where the effect runs; the surface holds the last
    fully processed frame and is what snapshots and streams read. Both are
    reused across frames and only reallocated when the frame size changes.
    """

    def __init__(
        self,
        source: VideoSource,
        registry: EffectRegistry,
        filter_id: Optional[str] = None,
        retry_attempts: int = config.CAMERA_RETRY_ATTEMPTS,
        retry_delay: float = config.CAMERA_RETRY_DELAY,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.source = source
        self.registry = registry
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

        self.state = LoopState.IDLE
        self.frames_processed = 0
        self.frames_dropped = 0

        self._scratch: Optional[PixelBuffer] = None
        self._surface: Optional[PixelBuffer] = None
        self._surface_lock = threading.Condition()
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._filter_id: Optional[str] = None
        self._effect = registry.resolve(None)
        self.select_filter(filter_id)

    # ------------------------------------------------------------------
    # Filter selection
    # ------------------------------------------------------------------

    @property
    def active_filter_id(self) -> Optional[str]:
        return self._filter_id

    @property
    def active_effect(self) -> EffectId:
        return self.registry.effect_id(self._filter_id)

    def select_filter(self, filter_id: Optional[str]) -> EffectId:
        """Switch effects. Resolved once here, not on every frame."""
        self._effect = self.registry.resolve(filter_id)
        self._filter_id = filter_id
        effect_id = self.registry.effect_id(filter_id)
        logger.info("Active filter: %s (%s)", filter_id, effect_id.value)
        return effect_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.state is LoopState.RUNNING

    def _acquire(self) -> None:
        with self._state_lock:
            if self.state is not LoopState.IDLE:
                raise RuntimeError(f"Frame loop cannot start from state {self.state.value}")

            kwargs = {"attempts": self.retry_attempts, "delay": self.retry_delay}
            if self._sleep is not None:
                kwargs["sleep"] = self._sleep
            acquire_camera(self.source, **kwargs)
            self.state = LoopState.RUNNING

    def start(self) -> None:
        """Acquire the camera here, then process frames on a worker thread."""
        self._acquire()
        self._thread = threading.Thread(target=self._run_frames, name="frame-loop", daemon=True)
        self._thread.start()

    def run(self, presenter: Optional[Presenter] = None, max_frames: Optional[int] = None) -> None:
        """Acquire the camera and process frames on the calling thread until stopped."""
        self._acquire()
        self._thread = threading.current_thread()
        self._run_frames(presenter, max_frames)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """
        Stop processing and release the camera.

        If the worker doesn't finish within `timeout` it is left to release
        the camera itself when its current read returns.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Frame loop worker still busy after %.1fs, it will release the camera", timeout)
                return
        self._shutdown()

    def _shutdown(self) -> None:
        with self._state_lock:
            if self.state is LoopState.STOPPED:
                return
            self.source.stop()
            self.state = LoopState.STOPPED
        with self._surface_lock:
            self._surface_lock.notify_all()
        logger.info("Frame loop stopped after %d frames (%d dropped)", self.frames_processed, self.frames_dropped)

    def _run_frames(self, presenter: Optional[Presenter] = None, max_frames: Optional[int] = None) -> None:
        try:
            while not self._stop_event.is_set():
                if not self.step(presenter):
                    break
                if max_frames is not None and self.frames_processed >= max_frames:
                    break
        finally:
            self._shutdown()

    # ------------------------------------------------------------------
    # Per-frame work
    # ------------------------------------------------------------------

    def _load_frame(self, frame: np.ndarray) -> PixelBuffer:
        height, width = frame.shape[:2]
        if self._scratch is None or self._scratch.size != (width, height):
            self._scratch = PixelBuffer.blank(width, height)
        cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA, dst=self._scratch.data)
        return self._scratch

    def step(self, presenter: Optional[Presenter] = None) -> bool:
        """
        Process a single frame.

        Returns False when the loop should end: the stream is gone or the
        presenter asked to stop.
        """
        frame = self.source.read()
        if frame is None:
            logger.info("Video stream ended")
            return False

        buffer = self._load_frame(frame)
        effect = self._effect
        try:
            effect(buffer, buffer.width, buffer.height)
        except Exception:
            self.frames_dropped += 1
            logger.exception("Effect failed on frame %d, dropping it", self.frames_processed)
            return True

        with self._surface_lock:
            if self._surface is None or self._surface.size != buffer.size:
                self._surface = buffer.copy()
            else:
                self._surface.copy_from(buffer)
            self.frames_processed += 1
            self._surface_lock.notify_all()

        if presenter is not None and presenter(buffer) is False:
            return False
        return True

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def snapshot(self) -> Optional[PixelBuffer]:
        """Copy of the last presented frame, or None before the first frame."""
        with self._surface_lock:
            if self._surface is None:
                return None
            return self._surface.copy()

    def mjpeg_frames(self, quality: int = config.JPEG_QUALITY, wait: float = 1.0) -> Iterator[bytes]:
        """multipart/x-mixed-replace chunks of the filtered surface, newest frame only."""
        seen = 0
        while True:
            with self._surface_lock:
                self._surface_lock.wait_for(
                    lambda: self.frames_processed != seen or self.state is LoopState.STOPPED,
                    timeout=wait,
                )
                if self.state is LoopState.STOPPED:
                    return
                if self._surface is None or self.frames_processed == seen:
                    continue
                bgr = self._surface.to_bgr()
                seen = self.frames_processed

            ok, encoded = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, quality])
            if not ok:
                logger.warning("JPEG encoding failed for frame %d", seen)
                continue
            yield (b"--frame\r\n"
                   b"Content-Type: image/jpeg\r\n\r\n" + encoded.tobytes() + b"\r\n")
