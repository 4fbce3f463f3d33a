"""
Read-only service store backed by the static services JSON file.
The file is re-read on every call; nothing is ever written back.
"""
import json
import logging
import math
from pathlib import Path
from typing import Any, NamedTuple

from listings.data.geo import Coordinates

logger = logging.getLogger(__name__)


class AuthorRecord(NamedTuple):
    author_id: str
    name: str
    username: str
    image: str | None = None
    bio: str | None = None


class ServiceRecord(NamedTuple):
    service_id: str
    title: str
    description: str
    category: str
    author: AuthorRecord
    location: Coordinates | None = None
    views: int = 0
    created_at: str | None = None
    slug: str | None = None
    pitch: str | None = None
    image: str | None = None
    price_range: str | None = None
    contact_method: str | None = None
    contact_details: str | None = None
    service_radius_km: float | None = None
    is_active: bool = True
    featured: bool = False


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _parse_location(raw: Any) -> Coordinates | None:
    if not isinstance(raw, dict):
        return None
    try:
        lat = float(raw["lat"])
        lng = float(raw["lng"])
    except (KeyError, TypeError, ValueError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    return Coordinates(lat=lat, lng=lng)


def _parse_author(raw: Any) -> AuthorRecord:
    raw = raw if isinstance(raw, dict) else {}
    return AuthorRecord(
        author_id=str(raw.get("_id") or ""),
        name=str(raw.get("name") or ""),
        username=str(raw.get("username") or ""),
        image=_str_or_none(raw.get("image")),
        bio=_str_or_none(raw.get("bio")),
    )


def _parse_service(raw: dict[str, Any]) -> ServiceRecord | None:
    service_id = _str_or_none(raw.get("_id"))
    if service_id is None:
        return None
    slug = raw.get("slug")
    if isinstance(slug, dict):
        slug = slug.get("current")
    try:
        radius = float(raw["serviceRadius"]) if raw.get("serviceRadius") is not None else None
    except (TypeError, ValueError):
        radius = None
    try:
        views = int(raw.get("views") or 0)
    except (TypeError, ValueError):
        views = 0
    return ServiceRecord(
        service_id=service_id,
        title=str(raw.get("title") or ""),
        description=str(raw.get("description") or ""),
        category=str(raw.get("category") or ""),
        author=_parse_author(raw.get("author")),
        location=_parse_location(raw.get("location")),
        views=views,
        created_at=_str_or_none(raw.get("_createdAt")),
        slug=_str_or_none(slug),
        pitch=_str_or_none(raw.get("pitch")),
        image=_str_or_none(raw.get("image")),
        price_range=_str_or_none(raw.get("priceRange")),
        contact_method=_str_or_none(raw.get("contactMethod")),
        contact_details=_str_or_none(raw.get("contactDetails")),
        service_radius_km=radius,
        is_active=bool(raw.get("isActive", True)),
        featured=bool(raw.get("featured", False)),
    )


def load_services(json_path: str | Path) -> list[ServiceRecord]:
    """
    Return all services from the JSON file, in file order.
    Missing or unreadable file yields an empty list; entries without an id are skipped.
    """
    json_path = Path(json_path)
    if not json_path.exists():
        logger.warning("telemetry services_file_missing path=%s", json_path)
        return []
    try:
        with open(json_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.error("telemetry services_file_unreadable path=%s error=%s", json_path, str(e))
        return []

    raw_list = data.get("services") if isinstance(data, dict) else data
    if not isinstance(raw_list, list):
        return []

    services: list[ServiceRecord] = []
    for raw in raw_list:
        if not isinstance(raw, dict):
            continue
        record = _parse_service(raw)
        if record is None:
            logger.warning("telemetry service_skipped reason=missing_id")
            continue
        services.append(record)
    return services


def get_service(json_path: str | Path, service_id: str) -> ServiceRecord | None:
    """Return the service with this id, or None when absent."""
    for service in load_services(json_path):
        if service.service_id == service_id:
            return service
    return None
