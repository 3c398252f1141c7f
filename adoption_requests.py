"""
Adoption request workflow.

A request starts ``pending`` and is decided once by the shelter that owns the
pet: ``pending -> approved`` or ``pending -> rejected``. Both outcomes are
terminal.
"""
import logging
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from auth import AuthContext, require_role
from database import REQUEST_STATUSES, AdoptionRequest, Pet, Volunteer, utcnow
from errors import BadRequest, Forbidden, InvalidTransition, NotFound
from serializers import adoption_request_to_dict, pet_summary, volunteer_summary
from validation import check_choice

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000
DECISIONS = ("approved", "rejected")


def create_adoption_request(db: Session, auth: Optional[AuthContext], pet_id: int,
                            message: Optional[str] = None) -> AdoptionRequest:
    """Record a volunteer's request to adopt a pet.

    A volunteer may hold several pending requests for the same pet.
    """
    auth = require_role(auth, "volunteer")

    if message is not None:
        if not isinstance(message, str):
            raise BadRequest("Message must be text")
        message = message.strip() or None
        if message and len(message) > MAX_MESSAGE_LENGTH:
            raise BadRequest(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

    pet = db.get(Pet, pet_id)
    if pet is None:
        raise NotFound("Pet not found")

    request = AdoptionRequest(volunteer_id=auth.user_id, pet_id=pet.id, status="pending", message=message)
    db.add(request)
    db.commit()
    logger.info("Adoption request %s for pet '%s' (%s) from volunteer %s.", request.id, pet.name, pet.id, auth.user_id)
    return request


def list_adoption_requests_for_shelter(db: Session, auth: Optional[AuthContext],
                                       status: Optional[str] = None) -> List[dict]:
    """All requests on the caller's pets with pet and volunteer summaries, newest first."""
    auth = require_role(auth, "shelter")
    if status is not None:
        check_choice(status, REQUEST_STATUSES, "status")

    query = (
        select(AdoptionRequest, Pet, Volunteer)
        .join(Pet, AdoptionRequest.pet_id == Pet.id)
        .join(Volunteer, AdoptionRequest.volunteer_id == Volunteer.id)
        .where(Pet.shelter_id == auth.user_id)
    )
    if status is not None:
        query = query.where(AdoptionRequest.status == status)
    query = query.order_by(AdoptionRequest.created_at.desc(), AdoptionRequest.id.desc())

    results = []
    for request, pet, volunteer in db.execute(query).all():
        item = adoption_request_to_dict(request)
        item["pet"] = pet_summary(pet)
        item["volunteer"] = volunteer_summary(volunteer)
        results.append(item)
    return results


def list_adoption_requests_for_volunteer(db: Session, auth: Optional[AuthContext]) -> List[dict]:
    auth = require_role(auth, "volunteer")
    rows = db.execute(
        select(AdoptionRequest, Pet)
        .join(Pet, AdoptionRequest.pet_id == Pet.id)
        .where(AdoptionRequest.volunteer_id == auth.user_id)
        .order_by(AdoptionRequest.created_at.desc(), AdoptionRequest.id.desc())
    ).all()
    results = []
    for request, pet in rows:
        item = adoption_request_to_dict(request)
        item["pet"] = pet_summary(pet)
        results.append(item)
    return results


def update_adoption_request_status(db: Session, auth: Optional[AuthContext], request_id: int,
                                   new_status: str) -> AdoptionRequest:
    """Approve or reject a pending request.

    Checks run in this order: caller is a shelter, ``new_status`` is a
    decision, the request exists, the caller owns the pet, the request is still
    pending. The final write is a conditional update on ``status = 'pending'``
    so concurrent decisions cannot both succeed.
    """
    auth = require_role(auth, "shelter")

    if new_status not in DECISIONS:
        raise InvalidTransition(f"Cannot move an adoption request to '{new_status}'")

    request = db.get(AdoptionRequest, request_id)
    if request is None:
        raise NotFound("Adoption request not found")

    pet = db.get(Pet, request.pet_id)
    if pet is None or pet.shelter_id != auth.user_id:
        raise Forbidden("You can only decide requests for your own pets")

    result = db.execute(
        update(AdoptionRequest)
        .where(AdoptionRequest.id == request_id, AdoptionRequest.status == "pending")
        .values(status=new_status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        db.refresh(request)
        raise InvalidTransition(f"Adoption request is already {request.status}")
    db.commit()
    db.refresh(request)

    # Notifying the volunteer is left to an external dispatcher
    logger.info("%s adoption request %s for pet '%s' (%s); volunteer %s to be notified.",
                new_status.capitalize(), request.id, pet.name, pet.id, request.volunteer_id)
    return request
