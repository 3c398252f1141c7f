"""
Identity and role resolution.

The identity provider is external: after a successful sign-in it redirects the
browser to ``/auth/callback`` with a short-lived code signed with the shared
``IDENTITY_SECRET``. The callback exchanges that code for a session cookie; every
request afterwards resolves the cookie into an explicit ``AuthContext`` which is
passed into the core operations.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from database import ROLES, Shelter, User, Volunteer, get_db
from errors import BadRequest, Forbidden, Unauthorized

logger = logging.getLogger(__name__)

SESSION_SECRET = os.environ.get("SESSION_SECRET", "dev-secret-please-change")
SESSION_MAX_AGE = int(os.environ.get("SESSION_MAX_AGE", "3600"))  # seconds
SESSION_HTTPS_ONLY = bool(int(os.environ.get("SESSION_HTTPS_ONLY", "0")))
SESSION_SAME_SITE = os.environ.get("SESSION_SAME_SITE", "lax")

IDENTITY_SECRET = os.environ.get("IDENTITY_SECRET", "dev-identity-secret-please-change")
IDENTITY_CODE_MAX_AGE = int(os.environ.get("IDENTITY_CODE_MAX_AGE", "300"))  # seconds
IDENTITY_CODE_SALT = "pawmatch-sign-in"


class AuthContext(BaseModel):
    user_id: str
    role: str


# --- Sign-in codes ---

def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(IDENTITY_SECRET, salt=IDENTITY_CODE_SALT)


def issue_sign_in_code(user_id: str, email: Optional[str] = None) -> str:
    """Sign a sign-in code the way the identity provider does."""
    return _serializer().dumps({"sub": user_id, "email": email})


def exchange_sign_in_code(code: str) -> dict:
    """Verify a sign-in code and return its payload (``sub`` and ``email``)."""
    try:
        payload = _serializer().loads(code, max_age=IDENTITY_CODE_MAX_AGE)
    except SignatureExpired:
        raise Unauthorized("Sign-in code has expired")
    except BadSignature:
        raise Unauthorized("Invalid sign-in code")
    if not isinstance(payload, dict) or not payload.get("sub"):
        raise Unauthorized("Invalid sign-in code")
    return payload


def ensure_user(db: Session, user_id: str, role: str = "volunteer", email: Optional[str] = None) -> User:
    """Return the user, creating it with its role-detail row on first sign-in.

    The role only applies on creation; an existing user keeps the role it was
    created with.
    """
    user = db.get(User, user_id)
    if user:
        return user

    if role not in ROLES:
        raise BadRequest(f"Invalid role '{role}'")

    user = User(id=user_id, role=role)
    db.add(user)
    # The role row references users.id, so the user row goes in first
    db.flush()
    if role == "shelter":
        # Use part of the email as the initial name until the shelter edits its profile
        name = email.split("@")[0] if email else "New Shelter"
        db.add(Shelter(id=user_id, name=name or "New Shelter"))
    else:
        db.add(Volunteer(id=user_id))
    db.commit()
    logger.info("Created %s account %s on first sign-in.", role, user_id)
    return user


# --- Per-request resolution ---

def get_auth_context(request: Request, db: Session) -> Optional[AuthContext]:
    """Return the AuthContext for the session, or None when signed out.

    Implements a sliding session timeout: if the session's ``last_active``
    timestamp is older than ``SESSION_MAX_AGE`` the session is cleared.
    """
    user_id = request.session.get("user_id")
    if not user_id:
        return None

    last_active = request.session.get("last_active")
    if last_active:
        try:
            la = datetime.fromisoformat(last_active)
            if la.tzinfo is None:
                la = la.replace(tzinfo=timezone.utc)
            age = (datetime.now(timezone.utc) - la).total_seconds()
            if age > SESSION_MAX_AGE:
                request.session.clear()
                return None
        except ValueError:
            request.session.clear()
            return None

    user = db.get(User, user_id)
    if not user:
        request.session.clear()
        return None

    request.session["last_active"] = datetime.now(timezone.utc).isoformat()
    return AuthContext(user_id=user.id, role=user.role)


def current_auth(request: Request, db: Session = Depends(get_db)) -> Optional[AuthContext]:
    """FastAPI dependency: AuthContext or None."""
    return get_auth_context(request, db)


def start_session(request: Request, user: User):
    request.session["user_id"] = user.id
    request.session["last_active"] = datetime.now(timezone.utc).isoformat()


# --- Guards used by the core operations ---

def require_auth(auth: Optional[AuthContext]) -> AuthContext:
    if auth is None:
        raise Unauthorized("Sign in required")
    return auth


def require_role(auth: Optional[AuthContext], role: str) -> AuthContext:
    auth = require_auth(auth)
    if auth.role != role:
        raise Forbidden(f"Only {role}s can do this")
    return auth
