"""
Runtime settings, read from the environment once at import.
"""

import os
from pathlib import Path

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./filtercam.db")

# Where LocalPhotoStore writes captured JPEGs
PHOTOS_DIR = Path(os.getenv("PHOTOS_DIR", "./photos"))

# Remote storage service (e.g. http://localhost:3000). Empty = local store.
STORAGE_URL = os.getenv("STORAGE_URL", "")

CAMERA_DEVICE = int(os.getenv("CAMERA_DEVICE", "0"))
CAMERA_WIDTH = int(os.getenv("CAMERA_WIDTH", "640"))
CAMERA_HEIGHT = int(os.getenv("CAMERA_HEIGHT", "480"))
CAMERA_FACING_MODE = os.getenv("CAMERA_FACING_MODE", "user")

# Only transient (abort-class) camera failures are retried
CAMERA_RETRY_ATTEMPTS = int(os.getenv("CAMERA_RETRY_ATTEMPTS", "3"))
CAMERA_RETRY_DELAY = float(os.getenv("CAMERA_RETRY_DELAY", "1.0"))

JPEG_QUALITY = int(os.getenv("JPEG_QUALITY", "95"))

UPLOAD_WORKERS = int(os.getenv("UPLOAD_WORKERS", "2"))
