"""
Webcam Filter Engine - FastAPI Backend
======================================

Live webcam filters with photo capture.

Endpoints:
- GET  /filters          - Filter catalog
- POST /filters/select   - Choose the active filter (by id)
- POST /camera/start     - Open the webcam and start the frame loop
- POST /camera/stop      - Stop the loop and release the webcam
- GET  /camera           - Frame loop status
- GET  /video_feed       - MJPEG stream of the filtered frames
- POST /capture          - Snapshot the filtered frame and store it
- POST /process          - Apply a filter to an uploaded still image
- GET  /health           - Health check
"""

import base64
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from PIL import UnidentifiedImageError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from filtercam import __version__, config
from filtercam.camera import CameraError, VideoSource, WebcamSource
from filtercam.capture import CaptureController, CaptureError, encode_jpeg
from filtercam.database import (
    LocalPhotoStore, SessionLocal, SqlFilterCatalog, get_db, init_db, seed_filters
)
from filtercam.dispatch import EffectRegistry
from filtercam.effects import EFFECTS, effect_id_for_name
from filtercam.frame_loop import FrameProcessingLoop, LoopState
from filtercam.models import (
    CameraStatusResponse, ErrorCode, ErrorResponse, FilterListResponse, HealthResponse,
    PhotoResponse, ProcessResponse, SelectFilterResponse
)
from filtercam.pixel_buffer import PixelBuffer
from filtercam.services import FilterCatalog, HttpFilterCatalog, HttpPhotoStore, PhotoStore


# ============================================================================
# Application Setup
# ============================================================================

registry = EffectRegistry()
frame_loop: Optional[FrameProcessingLoop] = None
capture_controller: Optional[CaptureController] = None
selected_filter_id: Optional[str] = None

# HTTP status + error code per camera failure category
CAMERA_ERRORS = {
    "permission_denied": (403, ErrorCode.CAMERA_PERMISSION_DENIED),
    "not_found": (404, ErrorCode.CAMERA_NOT_FOUND),
    "busy": (409, ErrorCode.CAMERA_BUSY),
    "aborted": (503, ErrorCode.CAMERA_UNAVAILABLE),
}


def make_source() -> VideoSource:
    return WebcamSource()


def make_catalog() -> FilterCatalog:
    if config.STORAGE_URL:
        return HttpFilterCatalog(config.STORAGE_URL)
    return SqlFilterCatalog()


def make_store() -> PhotoStore:
    if config.STORAGE_URL:
        return HttpPhotoStore(config.STORAGE_URL)
    return LocalPhotoStore()


def _stop_camera() -> None:
    global frame_loop, capture_controller
    if capture_controller is not None:
        capture_controller.shutdown()
        capture_controller = None
    if frame_loop is not None:
        frame_loop.stop()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    print("🚀 Webcam Filter Engine starting up...")
    init_db()
    db = SessionLocal()
    try:
        added = seed_filters(db)
    finally:
        db.close()
    print(f"✅ Database initialized ({added} filters seeded)")
    registry.refresh(make_catalog().list_filters())
    print(f"✅ Filter catalog loaded: {len(registry)} filters")
    print(f"📁 Photos directory: {config.PHOTOS_DIR}")
    yield
    _stop_camera()
    print("👋 Webcam Filter Engine shutting down...")


app = FastAPI(
    title="Webcam Filter Engine API",
    description="""
    ## Real-time webcam filters

    ### How it works:
    1. **Start** the camera and **select** a filter from the catalog
    2. Watch the filtered stream on `/video_feed`
    3. **Capture** a photo of the filtered frame, with an optional description

    Filters are matched to effects by name (e.g. `Black & White`); a filter
    whose name has no effect behaves like `Normal`.
    """,
    version=__version__,
    lifespan=lifespan
)

# CORS - allow the web app to connect
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _camera_status() -> CameraStatusResponse:
    if frame_loop is None:
        return CameraStatusResponse(status=LoopState.IDLE.value, active_filter_id=selected_filter_id)

    width, height = frame_loop.source.resolution
    return CameraStatusResponse(
        status=frame_loop.state.value,
        device=getattr(frame_loop.source, "device", None),
        width=width or None,
        height=height or None,
        active_filter_id=frame_loop.active_filter_id,
        frames_processed=frame_loop.frames_processed,
    )


def _require_running_loop() -> FrameProcessingLoop:
    if frame_loop is None or not frame_loop.is_running:
        raise HTTPException(
            status_code=409,
            detail={"error_code": ErrorCode.CAMERA_NOT_RUNNING, "message": "Camera is not running. Start it first."}
        )
    return frame_loop


def image_to_base64(image_bytes: bytes, format: str = "jpeg") -> str:
    """Convert image bytes to base64 data URL."""
    b64 = base64.b64encode(image_bytes).decode('utf-8')
    return f"data:image/{format};base64,{b64}"


# ============================================================================
# Health & Info Endpoints
# ============================================================================

@app.get("/", tags=["Info"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Webcam Filter Engine API",
        "version": __version__,
        "description": "Real-time webcam filters with photo capture",
        "filters": len(registry),
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health", response_model=HealthResponse, tags=["Info"])
async def health_check(db: Session = Depends(get_db)):
    """Check system health."""
    try:
        db.execute(text("SELECT 1"))
        database_connected = True
    except SQLAlchemyError:
        database_connected = False

    return HealthResponse(
        status="healthy" if database_connected else "degraded",
        version=__version__,
        database_connected=database_connected,
        camera_state=_camera_status().status,
        total_filters=len(registry)
    )


# ============================================================================
# Filter Endpoints
# ============================================================================

@app.get("/filters", response_model=FilterListResponse, tags=["Filters"])
async def list_filters():
    """Filter catalog in display order."""
    filters = registry.descriptors
    return FilterListResponse(total_filters=len(filters), filters=filters)


@app.post("/filters/select", response_model=SelectFilterResponse, tags=["Filters"])
async def select_filter(filter_id: str = Form(..., description="Catalog filter id")):
    """
    Make a filter active for the live stream.

    The effect is picked by the filter's name. Unknown ids are accepted
    and show the unfiltered frame.
    """
    global selected_filter_id
    selected_filter_id = filter_id
    if frame_loop is not None:
        frame_loop.select_filter(filter_id)

    return SelectFilterResponse(filter_id=filter_id, effect=registry.effect_id(filter_id).value)


# ============================================================================
# Camera Endpoints
# ============================================================================

@app.post(
    "/camera/start",
    response_model=CameraStatusResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse},
               409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Camera"]
)
async def start_camera():
    """Open the webcam (retrying transient failures) and start filtering frames."""
    global frame_loop, capture_controller

    if frame_loop is not None and frame_loop.is_running:
        return _camera_status()

    loop = FrameProcessingLoop(make_source(), registry, filter_id=selected_filter_id)
    try:
        await run_in_threadpool(loop.start)
    except CameraError as e:
        status_code, error_code = CAMERA_ERRORS.get(e.category, (503, ErrorCode.CAMERA_UNAVAILABLE))
        raise HTTPException(
            status_code=status_code,
            detail={"error_code": error_code, "message": e.message}
        )

    if capture_controller is not None:
        capture_controller.shutdown()
    frame_loop = loop
    capture_controller = CaptureController(loop, make_store())
    return _camera_status()


@app.post("/camera/stop", response_model=CameraStatusResponse, tags=["Camera"])
async def stop_camera():
    """Stop the frame loop and release the webcam."""
    await run_in_threadpool(_stop_camera)
    return _camera_status()


@app.get("/camera", response_model=CameraStatusResponse, tags=["Camera"])
async def camera_status():
    return _camera_status()


@app.get("/video_feed", tags=["Camera"])
async def video_feed():
    loop = _require_running_loop()
    return StreamingResponse(loop.mjpeg_frames(), media_type="multipart/x-mixed-replace; boundary=frame")


@app.post(
    "/capture",
    response_model=PhotoResponse,
    responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    tags=["Camera"]
)
async def capture_photo(description: Optional[str] = Form(None, description="Optional photo description")):
    """
    Snapshot the current filtered frame and send it to photo storage.

    The live stream keeps running. Failed uploads are not retried; call
    again to take a new photo.
    """
    _require_running_loop()
    controller = capture_controller

    try:
        photo = controller.capture(description)
    except CaptureError as e:
        raise HTTPException(status_code=409, detail={"error_code": e.error_code, "message": e.message})

    upload = controller.upload(photo)
    try:
        record = await run_in_threadpool(upload.result)
    except Exception as e:
        # Any store failure is an upload failure; the live stream is unaffected
        raise HTTPException(
            status_code=502,
            detail={"error_code": ErrorCode.UPLOAD_FAILED, "message": str(e)}
        )

    return PhotoResponse(photo=record)


# ============================================================================
# Still Image Processing
# ============================================================================

def _filter_uploaded_image(image_bytes: bytes, filter_id: Optional[str], filter_name: Optional[str]):
    try:
        buffer = PixelBuffer.from_image_bytes(image_bytes)
    except (UnidentifiedImageError, OSError) as e:
        raise HTTPException(
            status_code=400,
            detail={"error_code": ErrorCode.INVALID_IMAGE, "message": f"Could not decode image: {e}"}
        )

    # Catalog id wins; a bare name is matched against the effects directly
    if filter_id is not None:
        effect_id = registry.effect_id(filter_id)
    else:
        effect_id = effect_id_for_name(filter_name)

    EFFECTS[effect_id](buffer, buffer.width, buffer.height)
    return buffer, effect_id


@app.post(
    "/process",
    response_model=ProcessResponse,
    responses={400: {"model": ErrorResponse}},
    tags=["Processing"]
)
async def process_image(
    image: UploadFile = File(..., description="Image to filter"),
    filter_id: Optional[str] = Form(None, description="Catalog filter id"),
    filter_name: Optional[str] = Form(None, description="Effect name, used when no filter_id is given"),
):
    """Apply a filter to a still image and return it as a base64 data URL."""
    start_time = time.time()
    image_bytes = await image.read()

    buffer, effect_id = await run_in_threadpool(_filter_uploaded_image, image_bytes, filter_id, filter_name)
    processed_bytes = encode_jpeg(buffer)

    return ProcessResponse(
        filter_id=filter_id,
        effect=effect_id.value,
        width=buffer.width,
        height=buffer.height,
        processed_image=image_to_base64(processed_bytes),
        processing_time_ms=(time.time() - start_time) * 1000
    )


@app.post("/process/raw", tags=["Processing"])
async def process_image_raw(
    image: UploadFile = File(...),
    filter_id: Optional[str] = Form(None),
    filter_name: Optional[str] = Form(None),
):
    """Apply a filter and return raw JPEG bytes (no base64)."""
    image_bytes = await image.read()
    buffer, _ = await run_in_threadpool(_filter_uploaded_image, image_bytes, filter_id, filter_name)
    return Response(content=encode_jpeg(buffer), media_type="image/jpeg")


# ============================================================================
# Run Server
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("filtercam.main:app", host="0.0.0.0", port=8000, reload=True)
