"""Favorite manager: a volunteer's "like" on a pet listing."""
import logging
from typing import List, Optional

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import AuthContext, require_role
from database import Favorite, Pet
from errors import Conflict, NotFound
from serializers import favorite_to_dict, pet_to_dict

logger = logging.getLogger(__name__)


def add_favorite(db: Session, auth: Optional[AuthContext], pet_id: int) -> Favorite:
    """Add a pet to the caller's favorites.

    Uniqueness of (volunteer, pet) is enforced by the store's unique
    constraint, so two concurrent adds for the same pair produce exactly one
    row and a Conflict for the loser.
    """
    auth = require_role(auth, "volunteer")

    if db.get(Pet, pet_id) is None:
        raise NotFound("Pet not found")

    favorite = Favorite(volunteer_id=auth.user_id, pet_id=pet_id)
    db.add(favorite)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Pet is already in favorites")

    logger.info("Volunteer %s added pet %s to favorites.", auth.user_id, pet_id)
    return favorite


def remove_favorite(db: Session, auth: Optional[AuthContext], pet_id: int):
    auth = require_role(auth, "volunteer")

    result = db.execute(
        delete(Favorite).where(
            and_(Favorite.volunteer_id == auth.user_id, Favorite.pet_id == pet_id)
        )
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFound("Favorite not found")
    db.commit()
    logger.info("Volunteer %s removed pet %s from favorites.", auth.user_id, pet_id)


def is_favorite(db: Session, auth: Optional[AuthContext], pet_id: int) -> bool:
    # Anonymous browsing never errors here
    if auth is None:
        return False
    found = db.execute(
        select(Favorite.id)
        .where(and_(Favorite.volunteer_id == auth.user_id, Favorite.pet_id == pet_id))
        .limit(1)
    ).first()
    return found is not None


def list_favorites(db: Session, auth: Optional[AuthContext]) -> List[dict]:
    """Favorites joined with their pets.

    The inner join drops any favorite whose pet no longer exists.
    """
    auth = require_role(auth, "volunteer")
    rows = db.execute(
        select(Favorite, Pet)
        .join(Pet, Favorite.pet_id == Pet.id)
        .where(Favorite.volunteer_id == auth.user_id)
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
    ).all()
    return [{"favorite": favorite_to_dict(f), "pet": pet_to_dict(p)} for f, p in rows]
