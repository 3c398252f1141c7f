"""
Relational entity store for the marketplace.

Tables: users, shelters, volunteers, pets, favorites, adoption_requests, uploads,
pet_alerts, found_pets. Users, shelters and volunteers are keyed by the
identity provider's user id and uploads by their URL; everything else uses
integer surrogate keys.
"""
import os
import logging
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./data/pawmatch.db")

# --- Enumerations (stored as plain strings) ---
ROLES = ("shelter", "volunteer")
PET_TYPES = ("cat", "dog", "rabbit", "other")
PET_STATUSES = ("waiting", "in_shelter", "adopted")
PET_SEXES = ("male", "female")
REQUEST_STATUSES = ("pending", "approved", "rejected")
FOUND_PET_STATUSES = ("reported", "processed", "rescued")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    role = Column(String(20), nullable=False, default="volunteer")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Shelter(Base):
    __tablename__ = "shelters"

    id = Column(String(128), ForeignKey("users.id"), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    address = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    website = Column(String(255), nullable=True)
    donation_link = Column(String(255), nullable=True)
    location = Column(JSON, nullable=True)  # {"lat": float, "lng": float}
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    pets = relationship("Pet", back_populates="shelter")


class Volunteer(Base):
    __tablename__ = "volunteers"

    id = Column(String(128), ForeignKey("users.id"), primary_key=True)
    bio = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Pet(Base):
    __tablename__ = "pets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    sex = Column(String(10), nullable=False)
    age = Column(Integer, nullable=False)
    type = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="waiting", index=True)
    description = Column(Text, nullable=True)
    health = Column(Text, nullable=True)
    location = Column(JSON, nullable=True)
    images = Column(JSON, nullable=False, default=list)
    shelter_id = Column(String(128), ForeignKey("shelters.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    shelter = relationship("Shelter", back_populates="pets")
    # Deleting a pet takes its favorites and adoption requests with it
    favorites = relationship("Favorite", back_populates="pet", cascade="all, delete-orphan", passive_deletes=True)
    adoption_requests = relationship("AdoptionRequest", back_populates="pet", cascade="all, delete-orphan", passive_deletes=True)


class Favorite(Base):
    __tablename__ = "favorites"
    __table_args__ = (
        UniqueConstraint("volunteer_id", "pet_id", name="uq_favorites_volunteer_pet"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    volunteer_id = Column(String(128), ForeignKey("volunteers.id"), nullable=False, index=True)
    pet_id = Column(Integer, ForeignKey("pets.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    pet = relationship("Pet", back_populates="favorites")


class AdoptionRequest(Base):
    __tablename__ = "adoption_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    volunteer_id = Column(String(128), ForeignKey("volunteers.id"), nullable=False, index=True)
    pet_id = Column(Integer, ForeignKey("pets.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")
    message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    pet = relationship("Pet", back_populates="adoption_requests")
    volunteer = relationship("Volunteer")


class PetAlert(Base):
    __tablename__ = "pet_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    volunteer_id = Column(String(128), ForeignKey("volunteers.id"), nullable=False, index=True)
    pet_type = Column(String(20), nullable=False, index=True)
    location = Column(JSON, nullable=False)  # {"lat", "lng", "radius"} with radius in km
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class FoundPet(Base):
    __tablename__ = "found_pets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    volunteer_id = Column(String(128), ForeignKey("volunteers.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False, index=True)
    description = Column(Text, nullable=False)
    location = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default="reported")
    images = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Upload(Base):
    __tablename__ = "uploads"

    url = Column(String(512), primary_key=True)
    owner_id = Column(String(128), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
    if dbapi_connection.__class__.__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def make_engine(url: str = DATABASE_URL, **kwargs) -> Engine:
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, **kwargs)


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def _ensure_sqlite_dir(url: str):
    prefix = "sqlite:///"
    if url.startswith(prefix) and ":memory:" not in url:
        directory = os.path.dirname(url[len(prefix):])
        if directory:
            os.makedirs(directory, exist_ok=True)


def init_database(bind: Engine = None):
    """Create any missing tables."""
    bind = bind or engine
    _ensure_sqlite_dir(str(bind.url))
    Base.metadata.create_all(bind=bind)
    logger.info("Database initialized (%s)", bind.url)


def get_db():
    """FastAPI dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
