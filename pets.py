"""Shelter pet listings, shelter directory and profile editing."""
import logging
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from auth import AuthContext, require_role
from database import (
    PET_SEXES,
    PET_STATUSES,
    PET_TYPES,
    AdoptionRequest,
    Pet,
    Shelter,
    Volunteer,
    utcnow,
)
from errors import BadRequest, Forbidden, InvalidTransition, NotFound
from media import check_owned_images
from serializers import pet_to_dict, shelter_summary
from validation import check_choice, check_images, check_paging, optional_text, parse_location, require_text

logger = logging.getLogger(__name__)

PET_FIELDS = ("name", "sex", "age", "type", "status", "description", "health", "location", "images")
SHELTER_FIELDS = ("name", "description", "address", "phone", "website", "donation_link", "location")
VOLUNTEER_FIELDS = ("bio", "phone")


def _clean_age(value) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        age = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        age = int(value.strip())
    else:
        raise BadRequest("Age must be a whole number")
    if age < 0:
        raise BadRequest("Age must not be negative")
    return age


def _clean_pet_fields(data: dict, partial: bool) -> dict:
    """Validate pet fields; ``partial`` allows missing required fields (updates)."""
    clean = {}
    for field in ("name", "sex", "age", "type"):
        if field not in data or data[field] is None:
            if not partial:
                raise BadRequest("Missing required fields")
            continue
        value = data[field]
        if field == "name":
            clean["name"] = require_text(value, "name")
        elif field == "sex":
            clean["sex"] = check_choice(value, PET_SEXES, "sex")
        elif field == "age":
            clean["age"] = _clean_age(value)
        else:
            clean["type"] = check_choice(value, PET_TYPES, "pet type")

    if data.get("status") is not None:
        clean["status"] = check_choice(data["status"], PET_STATUSES, "status")
    for field in ("description", "health"):
        if field in data:
            clean[field] = optional_text(data[field], field)
    if "location" in data:
        clean["location"] = parse_location(data["location"]) if data["location"] is not None else None
    if "images" in data:
        clean["images"] = check_images(data["images"])
    return clean


# --- Pets ---

def create_pet(db: Session, auth: Optional[AuthContext], data: dict) -> Pet:
    auth = require_role(auth, "shelter")
    shelter = db.get(Shelter, auth.user_id)
    if shelter is None:
        raise NotFound("Shelter not found")

    clean = _clean_pet_fields(data, partial=False)
    check_owned_images(db, auth.user_id, clean.get("images") or [])
    if clean.get("status") == "adopted":
        raise InvalidTransition("A new listing cannot start as adopted")

    pet = Pet(shelter_id=shelter.id, **clean)
    if pet.images is None:
        pet.images = []
    db.add(pet)
    db.commit()
    logger.info("Shelter %s listed pet '%s' (%s).", shelter.id, pet.name, pet.id)
    return pet


def get_pet(db: Session, pet_id: int) -> dict:
    """Pet joined with its shelter summary."""
    row = db.execute(
        select(Pet, Shelter).outerjoin(Shelter, Pet.shelter_id == Shelter.id).where(Pet.id == pet_id)
    ).first()
    if row is None:
        raise NotFound("Pet not found")
    pet, shelter = row
    return {"pet": pet_to_dict(pet), "shelter": shelter_summary(shelter) if shelter else None}


def list_pets(db: Session, types: Optional[List[str]] = None, statuses: Optional[List[str]] = None,
              name: Optional[str] = None, shelter_id: Optional[str] = None, health: Optional[str] = None,
              limit: int = 20, offset: int = 0) -> List[Pet]:
    """Filtered listing.

    A type or status filter containing any unknown value is ignored as a whole.
    """
    check_paging(limit, offset)
    query = select(Pet)
    if types and all(t in PET_TYPES for t in types):
        query = query.where(Pet.type.in_(types))
    if statuses and all(s in PET_STATUSES for s in statuses):
        query = query.where(Pet.status.in_(statuses))
    if name:
        query = query.where(Pet.name.ilike(f"%{name}%"))
    if shelter_id:
        query = query.where(Pet.shelter_id == shelter_id)
    if health:
        query = query.where(Pet.health.ilike(f"%{health}%"))
    query = query.order_by(Pet.created_at.desc(), Pet.id.desc()).limit(limit).offset(offset)
    return db.execute(query).scalars().all()


def random_pets(db: Session, limit: int = 3) -> List[Pet]:
    return db.execute(select(Pet).order_by(func.random()).limit(limit)).scalars().all()


def _owned_pet(db: Session, auth: AuthContext, pet_id: int) -> Pet:
    pet = db.get(Pet, pet_id)
    if pet is None:
        raise NotFound("Pet not found")
    if pet.shelter_id != auth.user_id:
        raise Forbidden("You can only change your own pets")
    return pet


def _has_approved_request(db: Session, pet_id: int) -> bool:
    found = db.execute(
        select(AdoptionRequest.id)
        .where(AdoptionRequest.pet_id == pet_id, AdoptionRequest.status == "approved")
        .limit(1)
    ).first()
    return found is not None


def update_pet(db: Session, auth: Optional[AuthContext], pet_id: int, changes: dict) -> Pet:
    """Apply a partial update. ``id`` and ``shelter_id`` are never changed."""
    auth = require_role(auth, "shelter")
    pet = _owned_pet(db, auth, pet_id)

    changes = {k: v for k, v in changes.items() if k in PET_FIELDS}
    clean = _clean_pet_fields(changes, partial=True)
    check_owned_images(db, auth.user_id, clean.get("images") or [])

    if clean.get("status") == "adopted" and pet.status != "adopted" and not _has_approved_request(db, pet.id):
        raise InvalidTransition("A pet can only be marked adopted after an adoption request is approved")

    for field, value in clean.items():
        setattr(pet, field, value)
    pet.updated_at = utcnow()
    db.commit()
    logger.info("Shelter %s updated pet %s: %s", auth.user_id, pet.id, sorted(clean))
    return pet


def delete_pet(db: Session, auth: Optional[AuthContext], pet_id: int) -> List[str]:
    """Delete a pet together with its favorites and adoption requests.

    Returns the pet's image URLs so the caller can remove the files.
    """
    auth = require_role(auth, "shelter")
    pet = _owned_pet(db, auth, pet_id)
    images = list(pet.images or [])
    name = pet.name
    db.delete(pet)
    db.commit()
    logger.info("Shelter %s deleted pet '%s' (%s).", auth.user_id, name, pet_id)
    return images


# --- Shelters ---

def list_shelters(db: Session, name: Optional[str] = None, limit: int = 20, offset: int = 0) -> List[Shelter]:
    check_paging(limit, offset)
    query = select(Shelter)
    if name:
        query = query.where(Shelter.name.ilike(f"%{name}%"))
    query = query.order_by(Shelter.name, Shelter.id).limit(limit).offset(offset)
    return db.execute(query).scalars().all()


def get_shelter(db: Session, shelter_id: str) -> Shelter:
    shelter = db.get(Shelter, shelter_id)
    if shelter is None:
        raise NotFound("Shelter not found")
    return shelter


# --- Profiles ---

def update_shelter_profile(db: Session, auth: Optional[AuthContext], changes: dict) -> Shelter:
    auth = require_role(auth, "shelter")
    shelter = get_shelter(db, auth.user_id)
    changes = {k: v for k, v in changes.items() if k in SHELTER_FIELDS}
    for field in changes:
        if field == "name":
            changes["name"] = require_text(changes["name"], "name")
        elif field == "location":
            if changes["location"] is not None:
                changes["location"] = parse_location(changes["location"])
        else:
            changes[field] = optional_text(changes[field], field)
    for field, value in changes.items():
        setattr(shelter, field, value)
    shelter.updated_at = utcnow()
    db.commit()
    logger.info("Shelter %s updated profile: %s", shelter.id, sorted(changes))
    return shelter


def update_volunteer_profile(db: Session, auth: Optional[AuthContext], changes: dict) -> Volunteer:
    auth = require_role(auth, "volunteer")
    volunteer = db.get(Volunteer, auth.user_id)
    if volunteer is None:
        raise NotFound("Volunteer not found")
    changes = {k: optional_text(v, k) for k, v in changes.items() if k in VOLUNTEER_FIELDS}
    for field, value in changes.items():
        setattr(volunteer, field, value)
    volunteer.updated_at = utcnow()
    db.commit()
    logger.info("Volunteer %s updated profile: %s", volunteer.id, sorted(changes))
    return volunteer
