from listings.monitoring.metrics import get_metrics, record_location_lookup, record_request, reset_metrics

__all__ = ["get_metrics", "record_location_lookup", "record_request", "reset_metrics"]
