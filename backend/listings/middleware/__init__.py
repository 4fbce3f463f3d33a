from listings.middleware.request_logging import RequestLoggingMiddleware, client_address, client_ip

__all__ = ["RequestLoggingMiddleware", "client_address", "client_ip"]
