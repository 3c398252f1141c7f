"""Input checks shared by the core operations. All failures raise BadRequest."""
import math
from typing import Any, Iterable, List, Optional

from errors import BadRequest


def check_choice(value: Any, choices: Iterable[str], field: str) -> str:
    if value not in choices:
        raise BadRequest(f"Invalid {field} '{value}'. Expected one of: {', '.join(choices)}")
    return value


def _coordinate(location: dict, key: str) -> float:
    value = location.get(key)
    if value is None or isinstance(value, bool):
        raise BadRequest(f"Location is missing '{key}'")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise BadRequest(f"Location '{key}' must be a number")
    if math.isnan(number) or math.isinf(number):
        raise BadRequest(f"Location '{key}' must be a finite number")
    return number


def parse_location(location: Any, require_radius: bool = False) -> dict:
    """Validate a ``{"lat", "lng"[, "radius"]}`` mapping and return a clean copy.

    Zero is a valid coordinate; only missing or non-numeric values are rejected.
    """
    if not isinstance(location, dict):
        raise BadRequest("Invalid location format")

    lat = _coordinate(location, "lat")
    lng = _coordinate(location, "lng")
    if not -90.0 <= lat <= 90.0:
        raise BadRequest("Latitude must be between -90 and 90")
    if not -180.0 <= lng <= 180.0:
        raise BadRequest("Longitude must be between -180 and 180")

    clean = {"lat": lat, "lng": lng}
    if require_radius:
        radius = _coordinate(location, "radius")
        if radius <= 0:
            raise BadRequest("Radius must be greater than zero")
        clean["radius"] = radius
    return clean


def check_images(images: Any) -> List[str]:
    if images is None:
        return []
    if not isinstance(images, list):
        raise BadRequest("Images must be an array of URLs")
    if any(not isinstance(url, str) for url in images):
        raise BadRequest("All image URLs must be strings")
    return list(images)


def require_text(value: Optional[str], field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise BadRequest(f"Missing required field '{field}'")
    return value.strip()


def optional_text(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise BadRequest(f"Field '{field}' must be text")
    return value


def check_paging(limit: int, offset: int, max_limit: int = 100):
    if limit < 1 or limit > max_limit:
        raise BadRequest(f"limit must be between 1 and {max_limit}")
    if offset < 0:
        raise BadRequest("offset must not be negative")
