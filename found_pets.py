"""Found-pet (stray sighting) reports."""
import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.orm import Session

from alerts import match_alerts
from auth import AuthContext, require_auth, require_role
from database import FOUND_PET_STATUSES, PET_TYPES, FoundPet, PetAlert, utcnow
from errors import Forbidden, NotFound
from media import check_owned_images
from validation import check_choice, check_images, check_paging, parse_location, require_text

logger = logging.getLogger(__name__)


class FoundPetReport(BaseModel):
    """Result of a report: the stored record and the alerts it matched."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    found_pet: FoundPet
    matching_alerts: List[PetAlert] = []


def report_found_pet(db: Session, auth: Optional[AuthContext], type: str, description: str,
                     location: dict, images: Optional[list] = None) -> FoundPetReport:
    auth = require_role(auth, "volunteer")

    # Everything is validated before the insert
    check_choice(type, PET_TYPES, "pet type")
    description = require_text(description, "description")
    clean_location = parse_location(location)
    clean_images = check_owned_images(db, auth.user_id, check_images(images))

    found_pet = FoundPet(
        volunteer_id=auth.user_id,
        type=type,
        description=description,
        location=clean_location,
        status="reported",
        images=clean_images,
    )
    db.add(found_pet)
    db.commit()
    logger.info("Volunteer %s reported found %s %s at (%.5f, %.5f).",
                auth.user_id, type, found_pet.id, clean_location["lat"], clean_location["lng"])

    matches = match_alerts(db, type, clean_location)
    if matches:
        logger.info("Found pet %s matched %d alert(s): %s", found_pet.id, len(matches), [a.id for a in matches])
    return FoundPetReport(found_pet=found_pet, matching_alerts=matches)


def list_found_pets_for_volunteer(db: Session, auth: Optional[AuthContext]) -> List[FoundPet]:
    auth = require_auth(auth)
    return db.execute(
        select(FoundPet)
        .where(FoundPet.volunteer_id == auth.user_id)
        .order_by(FoundPet.created_at.desc(), FoundPet.id.desc())
    ).scalars().all()


def list_found_pets(db: Session, type: Optional[str] = None, status: Optional[str] = None,
                    limit: int = 20, offset: int = 0) -> List[FoundPet]:
    """Public listing. An unknown ``type`` is ignored rather than rejected."""
    check_paging(limit, offset)
    query = select(FoundPet)
    if type and type in PET_TYPES:
        query = query.where(FoundPet.type == type)
    if status:
        query = query.where(FoundPet.status == status)
    query = query.order_by(FoundPet.created_at.desc(), FoundPet.id.desc()).limit(limit).offset(offset)
    return db.execute(query).scalars().all()


def get_found_pet(db: Session, found_pet_id: int) -> FoundPet:
    found_pet = db.get(FoundPet, found_pet_id)
    if found_pet is None:
        raise NotFound("Found pet not found")
    return found_pet


def _owned_found_pet(db: Session, auth: AuthContext, found_pet_id: int) -> FoundPet:
    found_pet = get_found_pet(db, found_pet_id)
    if found_pet.volunteer_id != auth.user_id:
        raise Forbidden("You can only change your own reports")
    return found_pet


def update_found_pet_status(db: Session, auth: Optional[AuthContext], found_pet_id: int,
                            new_status: str) -> FoundPet:
    """Set the report's status.

    Any of reported/processed/rescued is accepted from any current status;
    the order is not enforced.
    """
    auth = require_auth(auth)
    check_choice(new_status, FOUND_PET_STATUSES, "status")
    found_pet = _owned_found_pet(db, auth, found_pet_id)

    previous = found_pet.status
    found_pet.status = new_status
    found_pet.updated_at = utcnow()
    db.commit()
    logger.info("Found pet %s moved %s -> %s by %s.", found_pet.id, previous, new_status, auth.user_id)
    return found_pet


def delete_found_pet(db: Session, auth: Optional[AuthContext], found_pet_id: int) -> List[str]:
    """Delete a report and return its image URLs for cleanup."""
    auth = require_auth(auth)
    found_pet = _owned_found_pet(db, auth, found_pet_id)
    images = list(found_pet.images or [])
    db.delete(found_pet)
    db.commit()
    logger.info("Found pet %s deleted by %s.", found_pet_id, auth.user_id)
    return images
