"""
Listing query engine: category/text filters, distance annotation, radius filter
and distance sort over an in-memory list of services. Pure functions; the caller
owns loading services and resolving the user location.
"""
import math
from typing import NamedTuple

from listings.data.geo import Coordinates, calculate_distance
from listings.data.services_repo import ServiceRecord

SORT_DISTANCE = "distance"

# Display order for category pills; unknown labels go last, alphabetically
CATEGORY_ORDER = (
    "accommodation",
    "surfing",
    "tours",
    "food",
    "transport",
    "beauty",
    "events",
    "home",
    "other",
)

PRICE_DISPLAY = {
    "free": "Free",
    "budget": "R0 - R100",
    "moderate": "R100 - R500",
    "premium": "R500 - R1000",
    "luxury": "R1000+",
    "quote": "Contact for Quote",
}


class QueryParams(NamedTuple):
    query: str | None = None
    category: str | None = None
    user_location: Coordinates | None = None
    max_distance_km: float | None = None
    sort_by: str | None = None


class AnnotatedService(NamedTuple):
    service: ServiceRecord
    distance_km: float | None = None


def parse_float_param(raw: str | float | None, *, allow_infinite: bool = False) -> float | None:
    """
    Parse a numeric query parameter. Blank, malformed or NaN values mean absent.
    Infinite values are absent too unless allow_infinite is set (a radius of
    "Infinity" still excludes services without a location).
    """
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value):
        return None
    if math.isinf(value) and not allow_infinite:
        return None
    return value


def _text_or_none(raw: str | None) -> str | None:
    """Blank means absent; anything else is passed through unstripped."""
    if raw is None or not raw.strip():
        return None
    return raw


def build_query_params(
    *,
    query: str | None = None,
    category: str | None = None,
    lat: str | float | None = None,
    lng: str | float | None = None,
    max_distance: str | float | None = None,
    sort_by: str | None = None,
) -> QueryParams:
    """Build QueryParams from raw request values. User location needs both lat and lng."""
    lat_value = parse_float_param(lat)
    lng_value = parse_float_param(lng)
    user_location = None
    if lat_value is not None and lng_value is not None:
        user_location = Coordinates(lat=lat_value, lng=lng_value)
    return QueryParams(
        query=_text_or_none(query),
        category=_text_or_none(category),
        user_location=user_location,
        max_distance_km=parse_float_param(max_distance, allow_infinite=True),
        sort_by=_text_or_none(sort_by),
    )


def _matches_text(service: ServiceRecord, needle: str) -> bool:
    return (
        needle in service.title.lower()
        or needle in service.description.lower()
        or needle in service.author.name.lower()
        or needle in service.author.username.lower()
    )


def _distance_sort_key(item: AnnotatedService) -> tuple[bool, float]:
    # None sorts after every finite distance
    if item.distance_km is None:
        return (True, 0.0)
    return (False, item.distance_km)


def query_services(all_services: list[ServiceRecord], params: QueryParams) -> list[AnnotatedService]:
    """
    Filter, annotate and order services.
    Order: category, free text, distance annotation, radius filter, distance sort.
    Without a sort mode the filtered input order is kept.
    """
    services = list(all_services)

    if params.category:
        services = [s for s in services if s.category == params.category]

    if params.query:
        needle = params.query.lower()
        services = [s for s in services if _matches_text(s, needle)]

    if params.user_location is None:
        return [AnnotatedService(service=s) for s in services]

    results = [
        AnnotatedService(
            service=s,
            distance_km=calculate_distance(params.user_location, s.location) if s.location else None,
        )
        for s in services
    ]

    if params.max_distance_km is not None:
        results = [
            r for r in results
            if r.distance_km is not None and r.distance_km <= params.max_distance_km
        ]

    if params.sort_by == SORT_DISTANCE:
        # sorted() is stable: equal distances keep filtered order
        results = sorted(results, key=_distance_sort_key)

    return results


def ordered_categories(services: list[ServiceRecord]) -> list[tuple[str, int]]:
    """Unique categories with counts: canonical order first, unknown labels alphabetically after."""
    counts: dict[str, int] = {}
    for s in services:
        if s.category:
            counts[s.category] = counts.get(s.category, 0) + 1

    def sort_key(label: str) -> tuple[int, str]:
        if label in CATEGORY_ORDER:
            return (CATEGORY_ORDER.index(label), "")
        return (len(CATEGORY_ORDER), label)

    return [(label, counts[label]) for label in sorted(counts, key=sort_key)]


def listing_heading(query: str | None, category: str | None) -> str:
    if query:
        return f'Search results for "{query}"'
    if category:
        return f"{category[:1].upper()}{category[1:]} Services"
    return "All Services"


def price_display(code: str | None) -> str | None:
    if not code:
        return None
    return PRICE_DISPLAY.get(code, code)
