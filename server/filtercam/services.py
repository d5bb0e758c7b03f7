"""
Collaborator contracts for the filter pipeline.

The pipeline needs two things from the outside world:
- a filter catalog (ordered {id, name, category} descriptors)
- a photo store that accepts (image bytes, filter id, description)

Local SQLAlchemy implementations live in database.py; the HTTP clients
here talk to a remote web app exposing /api/filters and /api/photos.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import requests
from pydantic import ValidationError

from filtercam.models import FilterDescriptor, PhotoRecord

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A collaborator could not list filters or store a photo."""


class FilterCatalog(ABC):
    @abstractmethod
    def list_filters(self) -> List[FilterDescriptor]:
        """All filters, in display order."""


class PhotoStore(ABC):
    @abstractmethod
    def save(self, image_bytes: bytes, filter_id: str, description: Optional[str] = None) -> PhotoRecord:
        """Persist a captured JPEG. Raises StorageError on failure."""


# ============================================================================
# HTTP Clients
# ============================================================================

class HttpFilterCatalog(FilterCatalog):
    """Reads GET {base_url}/api/filters."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def list_filters(self) -> List[FilterDescriptor]:
        try:
            response = self.session.get(f"{self.base_url}/api/filters", timeout=self.timeout)
            response.raise_for_status()
            items = response.json()
        except (requests.RequestException, ValueError) as e:
            raise StorageError(f"Failed to fetch filters: {e}") from e

        return [
            FilterDescriptor(
                id=str(item["id"]),
                name=item["name"],
                category=item.get("category"),
                description=item.get("description"),
            )
            for item in items
        ]


class HttpPhotoStore(PhotoStore):
    """POSTs multipart form data to {base_url}/api/photos."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def save(self, image_bytes: bytes, filter_id: str, description: Optional[str] = None) -> PhotoRecord:
        files = {"image": ("webcam.jpg", image_bytes, "image/jpeg")}
        data = {"filterId": filter_id}
        if description:
            data["description"] = description

        try:
            response = self.session.post(
                f"{self.base_url}/api/photos", files=files, data=data, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise StorageError(f"Failed to save photo: {e}") from e

        if not response.ok:
            try:
                detail = response.json().get("error", response.text)
            except ValueError:
                detail = response.text
            raise StorageError(f"Failed to save photo ({response.status_code}): {detail}")

        try:
            record = PhotoRecord.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise StorageError(f"Unexpected response from photo storage: {e}") from e
        logger.info("Uploaded photo %s (filter %s)", record.id, filter_id)
        return record
