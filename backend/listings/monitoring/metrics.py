"""In-memory counters for the /metrics endpoint: requests by status class and location lookups."""
import time
from collections.abc import MutableMapping
from threading import Lock

_start_time = time.monotonic()
_counts: MutableMapping[str, int] = {}
_lock = Lock()


def _status_bucket(status_code: int) -> str:
    if 200 <= status_code < 300:
        return "2xx"
    if 400 <= status_code < 500:
        return "4xx"
    if status_code >= 500:
        return "5xx"
    return "other"


def record_request(status_code: int) -> None:
    bucket = _status_bucket(status_code)
    with _lock:
        _counts[bucket] = _counts.get(bucket, 0) + 1


def record_location_lookup(found: bool) -> None:
    key = "location_found" if found else "location_unavailable"
    with _lock:
        _counts[key] = _counts.get(key, 0) + 1


def get_metrics() -> dict:
    with _lock:
        counts = dict(_counts)
    uptime_seconds = time.monotonic() - _start_time
    requests_total = sum(counts.get(b, 0) for b in ("2xx", "4xx", "5xx", "other"))
    return {
        "requests_total": requests_total,
        "requests_2xx": counts.get("2xx", 0),
        "requests_4xx": counts.get("4xx", 0),
        "requests_5xx": counts.get("5xx", 0),
        "location_lookups_found": counts.get("location_found", 0),
        "location_lookups_unavailable": counts.get("location_unavailable", 0),
        "uptime_seconds": round(uptime_seconds, 1),
    }


def reset_metrics() -> None:
    with _lock:
        _counts.clear()
