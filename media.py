"""Local-disk image store served from the ``/static`` mount.

Every stored file is recorded in the ``uploads`` table with the user who sent
it. Records may only reference local uploads their author owns, and only the
owner's deletions remove files.
"""
import os
import re
import shutil
import logging
from typing import Iterable, List, Optional
from uuid import uuid4

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.orm import Session

from database import Upload
from errors import BadRequest

logger = logging.getLogger(__name__)

STATIC_DIR = os.environ.get("STATIC_DIR", "static")
UPLOAD_DIR = os.path.join(STATIC_DIR, "uploads")
URL_PREFIX = "/static/uploads/"

ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp")
# Shelters upload listing photos, volunteers upload found-pet photos
FOLDER_BY_ROLE = {"shelter": "pets", "volunteer": "found-pets"}


def _ensure_upload_dir(folder: str) -> str:
    path = os.path.join(UPLOAD_DIR, folder)
    os.makedirs(path, exist_ok=True)
    return path


def _safe_name(filename: Optional[str]) -> str:
    return re.sub(r"[^a-zA-Z0-9.-]", "", os.path.basename(filename or "")) or "image"


def _local_path(url: str) -> Optional[str]:
    if not isinstance(url, str) or not url.startswith(URL_PREFIX):
        return None
    path = os.path.normpath(os.path.join(UPLOAD_DIR, url[len(URL_PREFIX):]))
    if not path.startswith(os.path.normpath(UPLOAD_DIR) + os.sep):
        return None
    return path


def save_image(db: Session, upload_file: Optional[UploadFile], user_id: str, role: str) -> str:
    """Save an uploaded image, record its owner and return its public URL."""
    if not upload_file or not getattr(upload_file, "filename", None):
        raise BadRequest("No file provided")
    if upload_file.content_type not in ALLOWED_CONTENT_TYPES:
        raise BadRequest("Invalid file type. Only JPEG, PNG, and WebP are allowed")

    folder = FOLDER_BY_ROLE.get(role)
    if folder is None:
        raise BadRequest(f"Invalid role '{role}'")

    unique_filename = f"{uuid4()}-{_safe_name(upload_file.filename)}"
    file_path = os.path.join(_ensure_upload_dir(folder), unique_filename)
    with open(file_path, "wb") as buffer:
        shutil.copyfileobj(upload_file.file, buffer)

    url = f"{URL_PREFIX}{folder}/{unique_filename}"
    db.add(Upload(url=url, owner_id=user_id))
    db.commit()
    logger.info("Stored upload %s for %s", url, user_id)
    return url


def check_owned_images(db: Session, user_id: str, urls: List[str]) -> List[str]:
    """Reject local upload URLs that ``user_id`` did not upload.

    External URLs pass through untouched.
    """
    local = [url for url in urls if url.startswith(URL_PREFIX)]
    if not local:
        return urls
    owned = set(db.execute(
        select(Upload.url).where(Upload.url.in_(local), Upload.owner_id == user_id)
    ).scalars().all())
    if any(url not in owned for url in local):
        raise BadRequest("Images must be your own uploads")
    return urls


def delete_images(db: Session, user_id: str, urls: Iterable[str]) -> int:
    """Remove stored files for the given URLs that ``user_id`` owns.

    Foreign and external URLs are skipped. Returns the number of files removed.
    """
    local = [url for url in (urls or []) if _local_path(url)]
    if not local:
        return 0
    uploads = db.execute(
        select(Upload).where(Upload.url.in_(local), Upload.owner_id == user_id)
    ).scalars().all()

    removed = 0
    for upload in uploads:
        try:
            os.remove(_local_path(upload.url))
            removed += 1
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Failed to delete image %s: %s", upload.url, e)
            continue
        db.delete(upload)
    db.commit()
    return removed
