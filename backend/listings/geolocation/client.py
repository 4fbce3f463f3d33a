"""
Approximate user location lookup.

get_user_location() awaits a single provider call under a caller-supplied timeout and
turns every failure (denied, no fix, HTTP error, timeout) into LocationUnavailable.
IPLocationClient is the provider used by the API: an ip-api compatible JSON endpoint.
"""
import asyncio
import ipaddress
import logging
import time
from typing import Any, Awaitable, Callable

import httpx

from listings.data.geo import Coordinates

logger = logging.getLogger(__name__)

DEFAULT_LOCATION_TIMEOUT_SECONDS = 8.0
DEFAULT_LOCATION_CACHE_TTL_SECONDS = 3600

LocationProvider = Callable[[], Awaitable[Coordinates]]


class LocationUnavailable(Exception):
    """The location provider denied, had no fix, failed, or timed out."""


class LocationCache:
    """In-memory TTL cache of resolved locations, keyed per client. Owned by the calling layer."""

    def __init__(self, ttl_seconds: float = DEFAULT_LOCATION_CACHE_TTL_SECONDS, max_entries: int = 1000):
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._store: dict[str, tuple[Coordinates, float]] = {}

    def get(self, key: str) -> Coordinates | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Coordinates) -> None:
        if key not in self._store and len(self._store) >= self._max_entries:
            # Evict the entry closest to expiry
            oldest_key = min(self._store, key=lambda k: self._store[k][1])
            self._store.pop(oldest_key, None)
        self._store[key] = (value, time.monotonic() + self._ttl)

    def clear(self) -> None:
        self._store.clear()


def _parse_location_payload(data: Any) -> Coordinates:
    """Extract coordinates from an ip-api style payload: {"status": "success", "lat": .., "lon": ..}."""
    if not isinstance(data, dict):
        raise LocationUnavailable("Unexpected location response.")
    status = data.get("status")
    if status is not None and status != "success":
        raise LocationUnavailable(f"No location fix: {data.get('message') or status}")
    try:
        lat = float(data["lat"])
        lng = float(data["lon"] if "lon" in data else data["lng"])
    except (KeyError, TypeError, ValueError) as e:
        raise LocationUnavailable("Location response missing coordinates.") from e
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise LocationUnavailable("Location response out of range.")
    return Coordinates(lat=lat, lng=lng)


class IPLocationClient:
    """Looks up an approximate position for a client IP address."""

    def __init__(self, base_url: str, timeout_seconds: float = DEFAULT_LOCATION_TIMEOUT_SECONDS):
        self._base = base_url.rstrip("/")
        self._timeout = timeout_seconds

    async def locate(self, ip: str) -> Coordinates:
        if not ip:
            raise LocationUnavailable("No client address to locate.")
        try:
            ip = str(ipaddress.ip_address(ip))
        except ValueError as e:
            raise LocationUnavailable("Client address is not an IP address.") from e
        url = f"{self._base}/{ip}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url, params={"fields": "status,message,lat,lon"})
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            logger.warning("telemetry geolocation_timeout ip=%s", ip)
            raise LocationUnavailable("Location provider timed out.") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("telemetry geolocation_error ip=%s error=%s", ip, str(e))
            raise LocationUnavailable(f"Location provider error: {e}") from e
        return _parse_location_payload(data)

    def provider_for(self, ip: str) -> LocationProvider:
        async def _provider() -> Coordinates:
            return await self.locate(ip)

        return _provider


async def get_user_location(
    provider: LocationProvider | None,
    timeout_seconds: float = DEFAULT_LOCATION_TIMEOUT_SECONDS,
) -> Coordinates:
    """
    Await the provider for the caller's position.
    Raises LocationUnavailable on any failure; callers should carry on without distances.
    """
    if provider is None:
        raise LocationUnavailable("No location provider configured.")
    try:
        return await asyncio.wait_for(provider(), timeout=timeout_seconds)
    except LocationUnavailable:
        raise
    except asyncio.TimeoutError as e:
        raise LocationUnavailable(f"No location within {timeout_seconds:.0f}s.") from e
    except Exception as e:
        logger.warning("telemetry location_provider_failed error=%s", type(e).__name__)
        raise LocationUnavailable(str(e) or type(e).__name__) from e
