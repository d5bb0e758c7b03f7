"""
Database module for the local filter catalog and captured photos.
Uses SQLite for simplicity - point DATABASE_URL elsewhere for a real server.

Photos are stored as JPEG files under PHOTOS_DIR; the table only keeps
their URL and metadata.
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, String, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from filtercam import config
from filtercam.models import FilterDescriptor, PhotoRecord
from filtercam.services import FilterCatalog, PhotoStore, StorageError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _engine_kwargs(url: str) -> dict:
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        # In-memory SQLite lives per connection; share one across threads
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return kwargs


# Database setup
DATABASE_URL = config.DATABASE_URL
engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Same set the web app seeds: (name, description, category)
FILTER_SEED = [
    ("Normal", "No filter effect", "Basic"),
    ("Black & White", "Convert image to grayscale", "Basic"),
    ("Brightness", "Increase image brightness", "Basic"),
    ("Contrast", "Enhance image contrast", "Basic"),
    ("Disney", "Disney-style animation effect", "Themed"),
    ("Anime", "Anime-style effect with bold lines", "Themed"),
    ("Comic Hero", "Comic book superhero style effect", "Themed"),
    ("Pixar", "Pixar-style animation effect", "Themed"),
    ("Vintage", "Classic sepia tone effect", "Basic"),
    ("Rainbow", "Add colorful rainbow gradient overlay", "Basic"),
    ("Pixel Art", "Convert image to pixel art style", "Artistic"),
    ("Cartoon", "Cartoon-style effect with edge detection", "Artistic"),
    ("Oil Painting", "Convert image to oil painting style", "Artistic"),
    ("Comic Book", "Comic book style with posterization", "Artistic"),
    ("Neon", "Add neon glow effect to image", "Artistic"),
]


class FilterRow(Base):
    __tablename__ = "filters"

    id = Column(String, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(String, nullable=True)
    category = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    def to_descriptor(self) -> FilterDescriptor:
        return FilterDescriptor(
            id=self.id, name=self.name, category=self.category, description=self.description
        )


class PhotoRow(Base):
    __tablename__ = "photos"

    id = Column(String, primary_key=True)
    filter_id = Column(String, ForeignKey("filters.id"), nullable=False)
    url = Column(String, nullable=False)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    def to_record(self) -> PhotoRecord:
        return PhotoRecord(
            id=self.id,
            filter_id=self.filter_id,
            url=self.url,
            description=self.description,
            created_at=self.created_at,
        )


def init_db():
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)


def get_db() -> Session:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ============================================================================
# Database Operations
# ============================================================================

def seed_filters(db: Session) -> int:
    """Insert any seed filters that are missing. Returns how many were added."""
    existing = {name for (name,) in db.query(FilterRow.name).all()}
    added = 0
    for name, description, category in FILTER_SEED:
        if name in existing:
            continue
        db.add(FilterRow(
            id=f"flt_{uuid.uuid4().hex[:12]}",
            name=name,
            description=description,
            category=category,
        ))
        added += 1
    db.commit()
    return added


def list_filters(db: Session) -> List[FilterRow]:
    """All filters sorted by name, like the web app's /api/filters."""
    return db.query(FilterRow).order_by(FilterRow.name.asc()).all()


def get_filter_by_id(db: Session, filter_id: str) -> Optional[FilterRow]:
    return db.query(FilterRow).filter(FilterRow.id == filter_id).first()


def get_filter_count(db: Session) -> int:
    return db.query(FilterRow).count()


def add_photo(
    db: Session,
    photo_id: str,
    filter_id: str,
    url: str,
    description: Optional[str] = None,
) -> PhotoRow:
    photo = PhotoRow(id=photo_id, filter_id=filter_id, url=url, description=description)
    db.add(photo)
    db.commit()
    db.refresh(photo)
    return photo


# ============================================================================
# Collaborator Implementations
# ============================================================================

class SqlFilterCatalog(FilterCatalog):
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def list_filters(self) -> List[FilterDescriptor]:
        db = self.session_factory()
        try:
            return [row.to_descriptor() for row in list_filters(db)]
        finally:
            db.close()


class LocalPhotoStore(PhotoStore):
    """
    Writes JPEGs to a directory and records them in the photos table.

    If the row can't be written the file is removed again.
    """

    def __init__(self, photos_dir: Path = config.PHOTOS_DIR, session_factory=SessionLocal):
        self.photos_dir = Path(photos_dir)
        self.session_factory = session_factory

    def save(self, image_bytes: bytes, filter_id: str, description: Optional[str] = None) -> PhotoRecord:
        db = self.session_factory()
        try:
            try:
                known = get_filter_by_id(db, filter_id) is not None
            except SQLAlchemyError as e:
                raise StorageError(f"Error looking up filter {filter_id}: {e}") from e
            if not known:
                raise StorageError(f"Filter not found: {filter_id}")

            photo_id = f"pht_{uuid.uuid4().hex[:12]}"
            file_path = self.photos_dir / f"{photo_id}.jpg"
            try:
                self.photos_dir.mkdir(parents=True, exist_ok=True)
                file_path.write_bytes(image_bytes)
            except OSError as e:
                raise StorageError(f"Error saving photo file: {e}") from e

            try:
                photo = add_photo(db, photo_id, filter_id, f"/photos/{file_path.name}", description)
            except SQLAlchemyError as e:
                db.rollback()
                file_path.unlink(missing_ok=True)
                logger.error("Error creating photo record, cleaned up %s", file_path)
                raise StorageError(f"Error creating photo record: {e}") from e

            logger.info("Saved photo %s (filter %s)", photo_id, filter_id)
            return photo.to_record()
        finally:
            db.close()


# Initialize database on import
init_db()
