"""Request logging middleware: one log line per request with timing and client address."""
import ipaddress
import logging
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from listings.monitoring.metrics import record_request

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def client_address(request: Request) -> str | None:
    """client_ip() normalised as an IP address, or None when it is not one."""
    try:
        return str(ipaddress.ip_address(client_ip(request)))
    except ValueError:
        return None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        record_request(response.status_code)
        query = request.url.query
        logger.info(
            "request method=%s path=%s query=%s status=%s duration_ms=%.1f client=%s",
            request.method,
            request.url.path,
            query[:200] if query else "-",
            response.status_code,
            duration_ms,
            client_ip(request),
        )
        return response
