"""
Pet alerts and the found-pet matcher.

An alert is a volunteer's standing interest in a species within ``radius`` km
of a point. A found-pet report matches an active alert when the species is the
same and the report lies inside the alert's circle.
"""
import math
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from auth import AuthContext, require_auth, require_role
from database import PET_TYPES, PetAlert
from errors import BadRequest, Forbidden, NotFound
from validation import check_choice, parse_location

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def within_radius(alert_location: dict, point: dict) -> bool:
    distance = haversine_km(alert_location["lat"], alert_location["lng"], point["lat"], point["lng"])
    return distance <= alert_location["radius"]


def match_alerts(db: Session, pet_type: str, location: dict) -> List[PetAlert]:
    """Active alerts for ``pet_type`` whose circle contains ``location``.

    Species filtering happens in the store; the distance test runs here.
    Read-only.
    """
    point = parse_location(location)
    candidates = db.execute(
        select(PetAlert)
        .where(PetAlert.pet_type == pet_type, PetAlert.active.is_(True))
        .order_by(PetAlert.id)
    ).scalars().all()

    matches = []
    for alert in candidates:
        try:
            centre = parse_location(alert.location, require_radius=True)
        except BadRequest:
            logger.warning("Skipping alert %s with malformed location %r", alert.id, alert.location)
            continue
        if within_radius(centre, point):
            matches.append(alert)
    return matches


def create_alert(db: Session, auth: Optional[AuthContext], pet_type: str, location: dict) -> PetAlert:
    auth = require_role(auth, "volunteer")
    check_choice(pet_type, PET_TYPES, "pet type")
    clean = parse_location(location, require_radius=True)

    alert = PetAlert(volunteer_id=auth.user_id, pet_type=pet_type, location=clean, active=True)
    db.add(alert)
    db.commit()
    logger.info("Volunteer %s created %s alert %s (%.1f km).", auth.user_id, pet_type, alert.id, clean["radius"])
    return alert


def list_alerts(db: Session, auth: Optional[AuthContext]) -> List[PetAlert]:
    auth = require_auth(auth)
    return db.execute(
        select(PetAlert)
        .where(PetAlert.volunteer_id == auth.user_id)
        .order_by(PetAlert.created_at.desc(), PetAlert.id.desc())
    ).scalars().all()


def _owned_alert(db: Session, auth: AuthContext, alert_id: int) -> PetAlert:
    alert = db.get(PetAlert, alert_id)
    if alert is None:
        raise NotFound("Alert not found")
    if alert.volunteer_id != auth.user_id:
        raise Forbidden("You can only change your own alerts")
    return alert


def delete_alert(db: Session, auth: Optional[AuthContext], alert_id: int):
    auth = require_auth(auth)
    alert = _owned_alert(db, auth, alert_id)
    db.delete(alert)
    db.commit()
    logger.info("Volunteer %s deleted alert %s.", auth.user_id, alert_id)


def toggle_alert(db: Session, auth: Optional[AuthContext], alert_id: int) -> PetAlert:
    auth = require_auth(auth)
    alert = _owned_alert(db, auth, alert_id)
    alert.active = not alert.active
    db.commit()
    logger.info("Volunteer %s %s alert %s.", auth.user_id, "activated" if alert.active else "paused", alert_id)
    return alert
