"""Prometheus metrics for API service.

Exposes key metrics for monitoring:
- Request counts by endpoint and status
- Request duration histograms
- Suggestion and feedback counts

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Matching metrics
supplier_suggestions_returned = Histogram(
    "supplier_suggestions_returned",
    "Number of suggestions returned per request",
    buckets=(0, 1, 2, 5, 10),
)

feedback_submitted_total = Counter(
    "supplier_feedback_submitted_total",
    "Total feedback records submitted",
    ["label"],
)

catalog_unavailable_total = Counter(
    "catalog_unavailable_total",
    "Requests failed because the supplier catalog was unavailable",
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
