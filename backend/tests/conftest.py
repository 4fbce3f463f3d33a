"""Pytest configuration and fixtures."""
import json
import sys
from pathlib import Path

import pytest

# Ensure backend root is on path when running pytest from repo root or backend
backend = Path(__file__).resolve().parent.parent
if str(backend) not in sys.path:
    sys.path.insert(0, str(backend))


def service_payload(
    service_id: str,
    title: str,
    *,
    category: str = "other",
    description: str = "",
    lat: float | None = None,
    lng: float | None = None,
    author_name: str = "Provider",
    username: str = "provider",
    views: int = 0,
    price_range: str | None = None,
) -> dict:
    """One entry shaped like data/services.json."""
    raw = {
        "_id": service_id,
        "_createdAt": "2025-10-16T06:30:47.806Z",
        "title": title,
        "slug": {"current": service_id},
        "description": description,
        "category": category,
        "author": {"_id": f"a-{service_id}", "name": author_name, "username": username},
        "views": views,
        "isActive": True,
        "featured": False,
    }
    if lat is not None and lng is not None:
        raw["location"] = {"lat": lat, "lng": lng}
    if price_range is not None:
        raw["priceRange"] = price_range
    return raw


@pytest.fixture
def make_service():
    return service_payload


@pytest.fixture
def write_services(tmp_path):
    """Write a list of raw service dicts to a temp services.json and return its path."""

    def _write(entries: list[dict]) -> Path:
        path = tmp_path / "services.json"
        path.write_text(json.dumps({"services": entries}), encoding="utf-8")
        return path

    return _write
