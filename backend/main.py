import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from settings import get_settings
from listings.auth.local_user import build_local_user
from listings.auth.models import LocalUserRequest, LocalUserResponse
from listings.data.geo import DEFAULT_CENTER, Coordinates, calculate_distance
from listings.data.services_repo import get_service, load_services
from listings.data.views_repo import SessionViewGuard, get_all_views, get_views, increment_view, init_views_db
from listings.geolocation.client import IPLocationClient, LocationCache, LocationUnavailable, get_user_location
from listings.middleware import RequestLoggingMiddleware, client_address, client_ip
from listings.monitoring import get_metrics, record_location_lookup
from listings.search.models import (
    CategoriesResponse,
    CategoryCount,
    ListingResponse,
    LocationModel,
    MapMarker,
    MapResponse,
    ServiceResponse,
    UserLocationResponse,
    ViewCountResponse,
)
from listings.search.service import (
    AnnotatedService,
    QueryParams,
    build_query_params,
    listing_heading,
    ordered_categories,
    query_services,
)

settings = get_settings()
BACKEND_ROOT = Path(__file__).resolve().parent
SERVICES_JSON = BACKEND_ROOT / settings.services_json_path
VIEWS_DB = BACKEND_ROOT / settings.views_db_path

MAP_DEFAULT_ZOOM = 13

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])

# Per-client location cache: one provider lookup per client per TTL window
_location_cache = LocationCache(ttl_seconds=settings.location_cache_ttl_seconds)
# At most one counted view per (session, service)
_view_guard = SessionViewGuard()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_views_db(VIEWS_DB)
    app.state.location_client = (
        IPLocationClient(settings.geolocation_url, timeout_seconds=settings.geolocation_timeout_seconds)
        if settings.geolocation_url
        else None
    )
    yield
    app.state.location_client = None


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception):
    """Return consistent JSON error for unhandled exceptions (500). Skip validation/HTTP errors."""
    from fastapi.exceptions import RequestValidationError
    if isinstance(exc, (HTTPException, RequestValidationError)):
        raise exc
    logger.exception("telemetry unhandled_exception path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again later."},
    )


# Order: last added = outermost. CORS wraps request logging.
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/favicon.ico", include_in_schema=False)
@limiter.exempt
def favicon(request: Request):
    """Return 204 so browser favicon requests don't log 404."""
    return Response(status_code=204)


@app.get("/health")
@limiter.exempt
def health(request: Request):
    logger.info("telemetry route=health")
    return {"status": "ok"}


@app.get("/metrics")
@limiter.exempt
def metrics(request: Request):
    """Request counts, location lookup outcomes and uptime."""
    return get_metrics()


# --- User location (fail-open: absent location just means no distances) ---


async def _resolve_user_location(request: Request) -> Coordinates | None:
    key = client_address(request)
    if key is None:
        logger.warning("telemetry location_unavailable client=%r reason=invalid address", client_ip(request)[:64])
        record_location_lookup(False)
        return None
    cached = _location_cache.get(key)
    if cached is not None:
        return cached
    location_client: IPLocationClient | None = getattr(app.state, "location_client", None)
    provider = location_client.provider_for(key) if location_client else None
    try:
        location = await get_user_location(provider, timeout_seconds=settings.geolocation_timeout_seconds)
    except LocationUnavailable as e:
        logger.warning("telemetry location_unavailable client=%s reason=%s", key, str(e))
        record_location_lookup(False)
        return None
    record_location_lookup(True)
    _location_cache.set(key, location)
    return location


@app.get("/location", response_model=UserLocationResponse)
async def get_location(request: Request):
    """Approximate location of the caller, or null when it cannot be determined."""
    location = await _resolve_user_location(request)
    if location is None:
        return UserLocationResponse(location=None)
    return UserLocationResponse(location=LocationModel(lat=location.lat, lng=location.lng))


# --- Services ---


def _with_view_counts(items: list[AnnotatedService], include_distance: bool) -> list[ServiceResponse]:
    counted = get_all_views(VIEWS_DB)
    return [
        ServiceResponse.from_annotated(
            item,
            include_distance=include_distance,
            views=item.service.views + counted.get(item.service.service_id, 0),
        )
        for item in items
    ]


@app.get("/services", response_model=list[ServiceResponse], response_model_exclude_unset=True)
def list_services(
    request: Request,
    query: str | None = None,
    category: str | None = None,
    lat: str | None = None,
    lng: str | None = None,
    max_distance: str | None = Query(default=None, alias="maxDistance"),
    sort_by: str | None = Query(default=None, alias="sortBy"),
):
    """
    Services filtered by category and free text. With lat/lng each service carries
    `distance` (km, null when the service has no location); maxDistance and
    sortBy=distance apply only then. Unparsable numbers are ignored.
    """
    params = build_query_params(
        query=query,
        category=category,
        lat=lat,
        lng=lng,
        max_distance=max_distance,
        sort_by=sort_by,
    )
    results = query_services(load_services(SERVICES_JSON), params)
    logger.info(
        "telemetry route=services category=%s has_query=%s located=%s count=%s",
        params.category or "all",
        params.query is not None,
        params.user_location is not None,
        len(results),
    )
    return _with_view_counts(results, include_distance=params.user_location is not None)


@app.get("/services/map", response_model=MapResponse)
def services_map(request: Request, category: str | None = None):
    """Markers for every service with a location, centered on Jeffreys Bay."""
    params = build_query_params(category=category)
    results = query_services(load_services(SERVICES_JSON), params)
    markers = [MapMarker.from_annotated(r) for r in results if r.service.location is not None]
    return MapResponse(
        center=LocationModel(lat=DEFAULT_CENTER[0], lng=DEFAULT_CENTER[1]),
        zoom=MAP_DEFAULT_ZOOM,
        markers=markers,
    )


@app.get("/services/{service_id}", response_model=ServiceResponse, response_model_exclude_unset=True)
def get_service_detail(request: Request, service_id: str, lat: str | None = None, lng: str | None = None):
    """Single service. Optional lat/lng adds the distance from the caller."""
    service = get_service(SERVICES_JSON, service_id)
    if service is None:
        raise HTTPException(status_code=404, detail="Service not found")
    params = build_query_params(lat=lat, lng=lng)
    distance = None
    if params.user_location is not None and service.location is not None:
        distance = calculate_distance(params.user_location, service.location)
    item = AnnotatedService(service=service, distance_km=distance)
    return _with_view_counts([item], include_distance=params.user_location is not None)[0]


@app.get("/services/{service_id}/views", response_model=ViewCountResponse)
def get_service_views(request: Request, service_id: str):
    service = get_service(SERVICES_JSON, service_id)
    if service is None:
        raise HTTPException(status_code=404, detail="Service not found")
    return ViewCountResponse(service_id=service_id, views=service.views + get_views(VIEWS_DB, service_id))


@app.post("/services/{service_id}/views", response_model=ViewCountResponse)
def post_service_view(
    request: Request,
    service_id: str,
    x_session_id: str | None = Header(default=None),
):
    """Count a view. Each session (X-Session-Id, else client address) counts a service once."""
    service = get_service(SERVICES_JSON, service_id)
    if service is None:
        raise HTTPException(status_code=404, detail="Service not found")
    session_key = (x_session_id or "").strip() or client_ip(request)
    if _view_guard.first_view(session_key, service_id):
        stored = increment_view(VIEWS_DB, service_id)
        logger.info("telemetry route=service_view service_id=%s counted=true", service_id)
        return ViewCountResponse(service_id=service_id, views=service.views + stored, counted=True)
    return ViewCountResponse(service_id=service_id, views=service.views + get_views(VIEWS_DB, service_id))


# --- Categories & listing page ---


def _category_pills(all_services) -> list[CategoryCount]:
    return [
        CategoryCount(category=label, label=f"{label[:1].upper()}{label[1:]}", count=count)
        for label, count in ordered_categories(all_services)
    ]


@app.get("/categories", response_model=CategoriesResponse)
def get_categories(request: Request):
    return CategoriesResponse(categories=_category_pills(load_services(SERVICES_JSON)))


@app.get("/listing", response_model=ListingResponse, response_model_exclude_unset=True)
async def get_listing(
    request: Request,
    query: str | None = None,
    category: str | None = None,
    lat: str | None = None,
    lng: str | None = None,
    max_distance: str | None = Query(default=None, alias="maxDistance"),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    locate: bool = False,
):
    """
    Home page payload: heading, category pills, counts and services.
    locate=true looks up the caller's approximate location when lat/lng are absent;
    if that fails the listing is returned without distances.
    """
    params = build_query_params(
        query=query,
        category=category,
        lat=lat,
        lng=lng,
        max_distance=max_distance,
        sort_by=sort_by,
    )
    if params.user_location is None and locate:
        located = await _resolve_user_location(request)
        if located is not None:
            params = params._replace(user_location=located)
    # File and SQLite reads stay off the event loop
    return await asyncio.to_thread(_build_listing, params)


def _build_listing(params: QueryParams) -> ListingResponse:
    all_services = load_services(SERVICES_JSON)
    results = query_services(all_services, params)
    user_location = params.user_location
    return ListingResponse(
        heading=listing_heading(params.query, params.category),
        query=params.query,
        category=params.category,
        user_location=LocationModel(lat=user_location.lat, lng=user_location.lng) if user_location else None,
        total_count=len(all_services),
        shown_count=len(results),
        categories=_category_pills(all_services),
        services=_with_view_counts(results, include_distance=user_location is not None),
    )


# --- Local login (record is returned to the client, never stored here) ---


@app.post("/auth/local-user", response_model=LocalUserResponse, status_code=201)
@limiter.limit("10/minute")
def post_local_user(request: Request, body: LocalUserRequest):
    user = build_local_user(body.name, body.email)
    logger.info("telemetry route=local_user user_id=%s", user.user_id)
    return LocalUserResponse(
        id=user.user_id,
        name=user.name,
        email=user.email,
        image=user.image,
        created_at=user.created_at,
    )
