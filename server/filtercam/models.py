"""
Pydantic Models for filter descriptors, photo records and API responses.

These define the contract between the filter pipeline, its catalog and
storage collaborators, and HTTP clients.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Collaborator Records
# ============================================================================

class FilterDescriptor(BaseModel):
    """One catalog entry. Effect dispatch keys on `name`, not `id`."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(..., description="Effect name, e.g. 'Black & White'")
    category: Optional[str] = Field(None, description="Basic, Themed or Artistic")
    description: Optional[str] = None


class PhotoRecord(BaseModel):
    """A stored photo as returned by the photo storage service."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    filter_id: str = Field(..., alias="filterId")
    url: str
    description: Optional[str] = None
    created_at: datetime = Field(..., alias="createdAt")


# ============================================================================
# Filter Endpoint Models
# ============================================================================

class FilterListResponse(BaseModel):
    total_filters: int
    filters: List[FilterDescriptor]


class SelectFilterResponse(BaseModel):
    status: str = "success"
    filter_id: str
    effect: str = Field(..., description="Effect actually applied (Normal when the name is unknown)")


# ============================================================================
# Camera / Capture Models
# ============================================================================

class CameraStatusResponse(BaseModel):
    status: str = Field(..., description="idle, running or stopped")
    device: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    active_filter_id: Optional[str] = None
    frames_processed: int = 0


class PhotoResponse(BaseModel):
    status: str = "success"
    photo: PhotoRecord

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "success",
                "photo": {
                    "id": "pht_abc123def456",
                    "filterId": "flt_0a1b2c3d4e5f",
                    "url": "/photos/pht_abc123def456.jpg",
                    "description": "Team photo",
                    "createdAt": "2024-01-15T10:30:00Z",
                },
            }
        }
    )


# ============================================================================
# Processing Endpoint Models
# ============================================================================

class ProcessResponse(BaseModel):
    """Response from the still-image processing endpoint."""
    status: str = "success"
    filter_id: Optional[str] = None
    effect: str
    width: int
    height: int
    processed_image: str = Field(..., description="Base64 data URL of the filtered image")
    image_format: str = "jpeg"
    processing_time_ms: float


# ============================================================================
# Health Check
# ============================================================================

class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    database_connected: bool
    camera_state: str
    total_filters: int


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    status: Literal["error"] = "error"
    error_code: str
    message: str
    details: Optional[dict] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "error",
                "error_code": "CAMERA_PERMISSION_DENIED",
                "message": "Camera access denied. Please allow camera access and try again.",
                "details": {"device": 0},
            }
        }
    )


# Error codes
class ErrorCode:
    CAMERA_PERMISSION_DENIED = "CAMERA_PERMISSION_DENIED"
    CAMERA_NOT_FOUND = "CAMERA_NOT_FOUND"
    CAMERA_BUSY = "CAMERA_BUSY"
    CAMERA_UNAVAILABLE = "CAMERA_UNAVAILABLE"
    CAMERA_NOT_RUNNING = "CAMERA_NOT_RUNNING"
    INVALID_IMAGE = "INVALID_IMAGE"
    NO_FRAME_AVAILABLE = "NO_FRAME_AVAILABLE"
    NO_FILTER_SELECTED = "NO_FILTER_SELECTED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
