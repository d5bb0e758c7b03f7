#!/usr/bin/env python3
"""Live webcam preview with filters.

Opens the webcam, runs the selected filter on every frame and shows the
result in an OpenCV window.

Keys:
    n / p   next / previous filter
    c       capture a photo of the filtered frame
    q       quit

Usage:
    python server/live_filters.py --device 0 --filter "Black & White"
"""
from __future__ import annotations

import argparse
import logging
import sys

import cv2

from filtercam import config
from filtercam.camera import CameraError, WebcamSource
from filtercam.capture import CaptureController, CaptureError, PhotoUpload, UploadState
from filtercam.database import LocalPhotoStore, SessionLocal, SqlFilterCatalog, seed_filters
from filtercam.dispatch import EffectRegistry
from filtercam.frame_loop import FrameProcessingLoop
from filtercam.pixel_buffer import PixelBuffer
from filtercam.services import HttpFilterCatalog, HttpPhotoStore


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Live webcam preview with filters")
    p.add_argument("--device", type=int, default=config.CAMERA_DEVICE, help="Camera device index (default: 0)")
    p.add_argument("--width", type=int, default=config.CAMERA_WIDTH, help="Camera width")
    p.add_argument("--height", type=int, default=config.CAMERA_HEIGHT, help="Camera height")
    p.add_argument("--filter", type=str, default="Normal", help="Filter name to start with")
    p.add_argument("--storage-url", type=str, default=config.STORAGE_URL,
                   help="Web app base URL for filters/photos (default: local database)")
    p.add_argument("--retries", type=int, default=config.CAMERA_RETRY_ATTEMPTS, help="Camera open attempts")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p.parse_args()


class PreviewWindow:
    """Shows frames and turns key presses into filter switches and captures."""

    def __init__(self, loop: FrameProcessingLoop, controller: CaptureController, window_name: str):
        self.loop = loop
        self.controller = controller
        self.window_name = window_name
        self.filter_ids = [d.id for d in loop.registry.descriptors]

    def _cycle(self, step: int) -> None:
        if not self.filter_ids:
            return
        current = self.loop.active_filter_id
        index = self.filter_ids.index(current) if current in self.filter_ids else -1
        filter_id = self.filter_ids[(index + step) % len(self.filter_ids)]
        descriptor = self.loop.registry.descriptor(filter_id)
        self.loop.select_filter(filter_id)
        print(f"Filter: {descriptor.name if descriptor else filter_id}", file=sys.stderr)

    def _capture(self) -> None:
        try:
            upload = self.controller.capture_and_upload()
        except CaptureError as e:
            print(f"WARNING: {e.message}", file=sys.stderr)
            return
        upload.add_done_callback(self._report)

    @staticmethod
    def _report(upload: PhotoUpload) -> None:
        if upload.state is UploadState.SUCCESS:
            print(f"Saved photo {upload.result().url}", file=sys.stderr)
        elif upload.state is UploadState.FAILURE:
            print(f"ERROR: Failed to save photo: {upload.error}", file=sys.stderr)

    def __call__(self, buffer: PixelBuffer) -> bool:
        cv2.imshow(self.window_name, buffer.to_bgr())
        key = cv2.waitKey(1) & 0xFF
        if key == ord("q"):
            return False
        if key == ord("n"):
            self._cycle(1)
        elif key == ord("p"):
            self._cycle(-1)
        elif key == ord("c"):
            self._capture()
        return True


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.storage_url:
        catalog, store = HttpFilterCatalog(args.storage_url), HttpPhotoStore(args.storage_url)
    else:
        db = SessionLocal()
        try:
            seed_filters(db)
        finally:
            db.close()
        catalog, store = SqlFilterCatalog(), LocalPhotoStore()

    registry = EffectRegistry.from_catalog(catalog)
    start_id = next((d.id for d in registry.descriptors if d.name == args.filter), None)
    if start_id is None:
        print(f"WARNING: No filter named {args.filter!r}, starting unfiltered", file=sys.stderr)

    source = WebcamSource(device=args.device, width=args.width, height=args.height)
    loop = FrameProcessingLoop(source, registry, filter_id=start_id, retry_attempts=args.retries)
    controller = CaptureController(loop, store)

    window_name = "Webcam Filters - n/p: filter, c: capture, q: quit"
    cv2.namedWindow(window_name, cv2.WINDOW_NORMAL)

    try:
        loop.run(presenter=PreviewWindow(loop, controller, window_name))
    except CameraError as e:
        print(f"ERROR: {e.message}", file=sys.stderr)
        return 2
    finally:
        loop.stop()
        controller.shutdown()
        cv2.destroyAllWindows()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
