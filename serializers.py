"""Row -> JSON-ready dict conversions used by the core listings and the API."""
from datetime import datetime
from typing import Optional

from database import AdoptionRequest, Favorite, FoundPet, Pet, PetAlert, Shelter, Volunteer


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def pet_to_dict(p: Pet) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "sex": p.sex,
        "age": p.age,
        "type": p.type,
        "status": p.status,
        "description": p.description,
        "health": p.health,
        "location": p.location,
        "images": list(p.images or []),
        "shelter_id": p.shelter_id,
        "created_at": _ts(p.created_at),
        "updated_at": _ts(p.updated_at),
    }


def pet_summary(p: Pet) -> dict:
    return {"id": p.id, "name": p.name, "type": p.type, "images": list(p.images or [])}


def shelter_to_dict(s: Shelter) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "description": s.description,
        "address": s.address,
        "phone": s.phone,
        "website": s.website,
        "donation_link": s.donation_link,
        "location": s.location,
        "created_at": _ts(s.created_at),
        "updated_at": _ts(s.updated_at),
    }


def shelter_summary(s: Shelter) -> dict:
    return {
        "id": s.id,
        "name": s.name,
        "address": s.address,
        "phone": s.phone,
        "website": s.website,
        "donation_link": s.donation_link,
    }


def volunteer_to_dict(v: Volunteer) -> dict:
    return {
        "id": v.id,
        "bio": v.bio,
        "phone": v.phone,
        "created_at": _ts(v.created_at),
        "updated_at": _ts(v.updated_at),
    }


def volunteer_summary(v: Volunteer) -> dict:
    return {"id": v.id, "bio": v.bio, "phone": v.phone}


def favorite_to_dict(f: Favorite) -> dict:
    return {
        "id": f.id,
        "volunteer_id": f.volunteer_id,
        "pet_id": f.pet_id,
        "created_at": _ts(f.created_at),
    }


def adoption_request_to_dict(r: AdoptionRequest) -> dict:
    return {
        "id": r.id,
        "volunteer_id": r.volunteer_id,
        "pet_id": r.pet_id,
        "status": r.status,
        "message": r.message,
        "created_at": _ts(r.created_at),
        "updated_at": _ts(r.updated_at),
    }


def alert_to_dict(a: PetAlert) -> dict:
    return {
        "id": a.id,
        "volunteer_id": a.volunteer_id,
        "pet_type": a.pet_type,
        "location": a.location,
        "active": a.active,
        "created_at": _ts(a.created_at),
    }


def found_pet_to_dict(fp: FoundPet) -> dict:
    return {
        "id": fp.id,
        "volunteer_id": fp.volunteer_id,
        "type": fp.type,
        "description": fp.description,
        "location": fp.location,
        "status": fp.status,
        "images": list(fp.images or []),
        "created_at": _ts(fp.created_at),
        "updated_at": _ts(fp.updated_at),
    }
