import os
import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, File, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import RedirectResponse
from starlette.status import HTTP_201_CREATED, HTTP_303_SEE_OTHER

import adoption_requests
import alerts
import auth
import favorites
import found_pets
import media
import pets
from auth import AuthContext, current_auth
from database import Shelter, Volunteer, get_db, init_database
from errors import BadRequest, MarketplaceError
from serializers import (
    adoption_request_to_dict,
    alert_to_dict,
    favorite_to_dict,
    found_pet_to_dict,
    pet_to_dict,
    shelter_to_dict,
    volunteer_to_dict,
)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]",
)
logger = logging.getLogger(__name__)

# --- App Setup ---
app = FastAPI(title="PawMatch")

app.add_middleware(
    SessionMiddleware,
    secret_key=auth.SESSION_SECRET,
    max_age=auth.SESSION_MAX_AGE,
    same_site=auth.SESSION_SAME_SITE,
    https_only=auth.SESSION_HTTPS_ONLY,
)

# Mount static files (including uploads)
os.makedirs(media.UPLOAD_DIR, exist_ok=True)
app.mount("/static", StaticFiles(directory=media.STATIC_DIR), name="static")


# --- Request Schemas ---
# Fields are optional here so missing values reach the core checks and come
# back as VALIDATION_ERROR with a readable message.

class FavoriteIn(BaseModel):
    pet_id: Optional[int] = None


class AdoptionRequestIn(BaseModel):
    pet_id: Optional[int] = None
    message: Optional[str] = None


class StatusIn(BaseModel):
    status: Optional[str] = None


class FoundPetStatusIn(BaseModel):
    id: Optional[int] = None
    status: Optional[str] = None


class AlertIn(BaseModel):
    pet_type: Optional[str] = None
    location: Optional[Dict[str, Any]] = None


class FoundPetIn(BaseModel):
    type: Optional[str] = None
    description: Optional[str] = None
    location: Optional[Dict[str, Any]] = None
    images: Optional[List[Any]] = None


def _required(value, message: str):
    if value is None:
        raise BadRequest(message)
    return value


def _split(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


# --- Error Handlers ---

@app.exception_handler(MarketplaceError)
def handle_marketplace_error(request: Request, err: MarketplaceError):
    return JSONResponse(status_code=err.status_code, content={"error_code": err.error_code, "message": err.message})


@app.exception_handler(RequestValidationError)
def handle_request_validation(request: Request, err: RequestValidationError):
    return JSONResponse(status_code=400, content={"error_code": "VALIDATION_ERROR", "details": jsonable_encoder(err.errors())})


@app.exception_handler(Exception)
def handle_unexpected(request: Request, err: Exception):
    logger.error("Unhandled exception on %s %s: %s", request.method, request.url.path, err, exc_info=True)
    return JSONResponse(status_code=500, content={"error_code": "INTERNAL_SERVER_ERROR", "message": "Unexpected server error."})


@app.on_event("startup")
def _init_store():
    init_database()


# --- 1. Authentication ---

@app.get("/auth/callback", tags=["Authentication"])
def auth_callback(request: Request, code: str, role: str = "volunteer", next: str = "/", db: Session = Depends(get_db)):
    """Exchange the identity provider's sign-in code for a session.

    First sign-in creates the user with ``role``; later sign-ins keep the
    stored role.
    """
    payload = auth.exchange_sign_in_code(code)
    user = auth.ensure_user(db, payload["sub"], role=role, email=payload.get("email"))
    auth.start_session(request, user)

    # Only same-site relative redirects
    target = next if next.startswith("/") and not next.startswith("//") else "/"
    return RedirectResponse(url=target, status_code=HTTP_303_SEE_OTHER)


@app.get("/auth/me", tags=["Authentication"])
def read_me(ctx: Optional[AuthContext] = Depends(current_auth)):
    ctx = auth.require_auth(ctx)
    return ctx.model_dump()


@app.get("/logout", tags=["Authentication"])
def process_logout(request: Request):
    """Clears the user session and redirects to home."""
    request.session.clear()
    return RedirectResponse(url="/", status_code=HTTP_303_SEE_OTHER)


# --- 2. Favorites ---

@app.get("/api/favorites", tags=["Favorites"])
def list_favorites(db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    return favorites.list_favorites(db, ctx)


@app.post("/api/favorites", status_code=HTTP_201_CREATED, tags=["Favorites"])
def add_favorite(body: FavoriteIn, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    auth.require_auth(ctx)
    pet_id = _required(body.pet_id, "Missing pet ID")
    return favorite_to_dict(favorites.add_favorite(db, ctx, pet_id))


@app.delete("/api/favorites", tags=["Favorites"])
def remove_favorite(pet_id: Optional[int] = None, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    pet_id = _required(pet_id, "Missing pet ID")
    favorites.remove_favorite(db, ctx, pet_id)
    return {"success": True}


@app.get("/api/favorites/check", tags=["Favorites"])
def check_favorite(pet_id: Optional[int] = None, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    pet_id = _required(pet_id, "Missing pet ID")
    return {"is_favorite": favorites.is_favorite(db, ctx, pet_id)}


# --- 3. Adoption Requests ---

@app.post("/api/adoption-requests", status_code=HTTP_201_CREATED, tags=["Adoption Requests"])
def create_adoption_request(body: AdoptionRequestIn, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    auth.require_role(ctx, "volunteer")
    pet_id = _required(body.pet_id, "Missing pet ID")
    request = adoption_requests.create_adoption_request(db, ctx, pet_id, body.message)
    return adoption_request_to_dict(request)


@app.get("/api/adoption-requests", tags=["Adoption Requests"])
def list_adoption_requests(status: Optional[str] = None, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    """Shelters see requests on their pets; volunteers see their own."""
    ctx = auth.require_auth(ctx)
    if ctx.role == "shelter":
        return adoption_requests.list_adoption_requests_for_shelter(db, ctx, status=status)
    return adoption_requests.list_adoption_requests_for_volunteer(db, ctx)


@app.patch("/api/adoption-requests/{request_id}", tags=["Adoption Requests"])
def update_adoption_request_status(request_id: int, body: StatusIn, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    auth.require_auth(ctx)
    new_status = _required(body.status, "Missing status")
    request = adoption_requests.update_adoption_request_status(db, ctx, request_id, new_status)
    return adoption_request_to_dict(request)


# --- 4. Alerts ---

@app.get("/api/alerts", tags=["Alerts"])
def list_alerts(db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    return [alert_to_dict(a) for a in alerts.list_alerts(db, ctx)]


@app.post("/api/alerts", status_code=HTTP_201_CREATED, tags=["Alerts"])
def create_alert(body: AlertIn, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    auth.require_role(ctx, "volunteer")
    if body.pet_type is None or body.location is None:
        raise BadRequest("Missing required fields")
    return alert_to_dict(alerts.create_alert(db, ctx, body.pet_type, body.location))


@app.delete("/api/alerts", tags=["Alerts"])
def delete_alert(id: Optional[int] = None, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    alert_id = _required(id, "Missing alert ID")
    alerts.delete_alert(db, ctx, alert_id)
    return {"success": True}


@app.patch("/api/alerts/{alert_id}/toggle", tags=["Alerts"])
def toggle_alert(alert_id: int, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    return alert_to_dict(alerts.toggle_alert(db, ctx, alert_id))


# --- 5. Found Pets ---

@app.get("/api/found-pets", tags=["Found Pets"])
def list_found_pets(type: Optional[str] = None, status: Optional[str] = None, limit: int = 20, offset: int = 0,
                    db: Session = Depends(get_db)):
    return [found_pet_to_dict(fp) for fp in found_pets.list_found_pets(db, type=type, status=status, limit=limit, offset=offset)]


@app.post("/api/found-pets", status_code=HTTP_201_CREATED, tags=["Found Pets"])
def report_found_pet(body: FoundPetIn, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    auth.require_role(ctx, "volunteer")
    if body.type is None or body.description is None or body.location is None:
        raise BadRequest("Missing required fields")
    report = found_pets.report_found_pet(db, ctx, body.type, body.description, body.location, body.images)
    # Only the count leaves the service; alerts belong to other volunteers
    return {"found_pet": found_pet_to_dict(report.found_pet), "matching_alerts": len(report.matching_alerts)}


@app.patch("/api/found-pets", tags=["Found Pets"])
def update_found_pet_status(body: FoundPetStatusIn, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    auth.require_auth(ctx)
    if body.id is None or body.status is None:
        raise BadRequest("Missing required fields")
    return found_pet_to_dict(found_pets.update_found_pet_status(db, ctx, body.id, body.status))


@app.get("/api/found-pets/mine", tags=["Found Pets"])
def list_my_found_pets(db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    return [found_pet_to_dict(fp) for fp in found_pets.list_found_pets_for_volunteer(db, ctx)]


@app.get("/api/found-pets/{found_pet_id}", tags=["Found Pets"])
def read_found_pet(found_pet_id: int, db: Session = Depends(get_db)):
    return found_pet_to_dict(found_pets.get_found_pet(db, found_pet_id))


@app.patch("/api/found-pets/{found_pet_id}", tags=["Found Pets"])
def update_found_pet(found_pet_id: int, body: StatusIn, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    auth.require_auth(ctx)
    new_status = _required(body.status, "Missing status")
    return found_pet_to_dict(found_pets.update_found_pet_status(db, ctx, found_pet_id, new_status))


@app.delete("/api/found-pets/{found_pet_id}", tags=["Found Pets"])
def delete_found_pet(found_pet_id: int, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    images = found_pets.delete_found_pet(db, ctx, found_pet_id)
    media.delete_images(db, ctx.user_id, images)
    return {"success": True}


# --- 6. Pets & Shelters ---

@app.get("/api/pets", tags=["Pets"])
def list_pets(type: Optional[str] = None, status: Optional[str] = None, name: Optional[str] = None,
              shelter: Optional[str] = None, health: Optional[str] = None, limit: int = 20, offset: int = 0,
              db: Session = Depends(get_db)):
    result = pets.list_pets(db, types=_split(type), statuses=_split(status), name=name, shelter_id=shelter,
                            health=health, limit=limit, offset=offset)
    return [pet_to_dict(p) for p in result]


@app.post("/api/pets", status_code=HTTP_201_CREATED, tags=["Pets"])
def create_pet(body: Dict[str, Any] = Body(...), db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    return pet_to_dict(pets.create_pet(db, ctx, body))


@app.delete("/api/pets", tags=["Pets"])
def delete_pet(id: Optional[int] = None, db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    pet_id = _required(id, "Missing pet ID")
    images = pets.delete_pet(db, ctx, pet_id)
    media.delete_images(db, ctx.user_id, images)
    return {"success": True}


@app.get("/api/pets/lending", tags=["Pets"])
def read_lending_pets(db: Session = Depends(get_db)):
    return [pet_to_dict(p) for p in pets.random_pets(db, limit=3)]


@app.get("/api/pets/{pet_id}", tags=["Pets"])
def read_pet(pet_id: int, db: Session = Depends(get_db)):
    return pets.get_pet(db, pet_id)


@app.patch("/api/pets/{pet_id}", tags=["Pets"])
def update_pet(pet_id: int, body: Dict[str, Any] = Body(...), db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    return pet_to_dict(pets.update_pet(db, ctx, pet_id, body))


@app.get("/api/shelters", tags=["Shelters"])
def list_shelters(name: Optional[str] = None, limit: int = 20, offset: int = 0, db: Session = Depends(get_db)):
    return [shelter_to_dict(s) for s in pets.list_shelters(db, name=name, limit=limit, offset=offset)]


@app.get("/api/shelters/{shelter_id}", tags=["Shelters"])
def read_shelter(shelter_id: str, db: Session = Depends(get_db)):
    return shelter_to_dict(pets.get_shelter(db, shelter_id))


# --- 7. Profile & Uploads ---

@app.get("/api/profile", tags=["Profile"])
def read_profile(db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    ctx = auth.require_auth(ctx)
    if ctx.role == "shelter":
        detail = db.get(Shelter, ctx.user_id)
        return {"user": ctx.model_dump(), "shelter": shelter_to_dict(detail) if detail else None}
    detail = db.get(Volunteer, ctx.user_id)
    return {"user": ctx.model_dump(), "volunteer": volunteer_to_dict(detail) if detail else None}


@app.patch("/api/profile", tags=["Profile"])
def update_profile(body: Dict[str, Any] = Body(...), db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    ctx = auth.require_auth(ctx)
    if ctx.role == "shelter":
        return shelter_to_dict(pets.update_shelter_profile(db, ctx, body))
    return volunteer_to_dict(pets.update_volunteer_profile(db, ctx, body))


@app.post("/api/upload", tags=["Profile"])
def upload_image(file: UploadFile = File(None), db: Session = Depends(get_db), ctx: Optional[AuthContext] = Depends(current_auth)):
    ctx = auth.require_auth(ctx)
    return {"url": media.save_image(db, file, ctx.user_id, ctx.role)}


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=port)
