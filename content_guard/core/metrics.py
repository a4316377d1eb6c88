"""
Prometheus Metrics for Observability

Tracks detection outcomes, inference latency and model loading.
Exposes /metrics endpoint for Prometheus scraping.
"""

from prometheus_client import (
    Counter,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Detection outcomes
nsfw_detections_total = Counter(
    "nsfw_detections_total",
    "Total number of NSFW detections",
    labelnames=["category", "outcome"]  # outcome: "classified" or "failed"
)

nsfw_detection_latency_seconds = Histogram(
    "nsfw_detection_latency_seconds",
    "End-to-end time spent in a detection call",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

nsfw_inference_latency_seconds = Histogram(
    "nsfw_inference_latency_seconds",
    "Time spent running the model on one tensor",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Model loading
nsfw_model_load_seconds = Histogram(
    "nsfw_model_load_seconds",
    "Time to fetch and load the NSFW model",
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0]
)

nsfw_model_init_failures_total = Counter(
    "nsfw_model_init_failures_total",
    "Number of failed model initialization attempts"
)

# Audit trail
nsfw_audit_records_total = Counter(
    "nsfw_audit_records_total",
    "Audit records written",
    labelnames=["verdict"]  # "blocked" or "allowed"
)

# API Request Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Application Info
app_info = Info(
    "content_guard",
    "Application information"
)


# =============================================================================
# Helper Functions
# =============================================================================

def set_app_info(version: str, environment: str):
    """Set application info metric."""
    app_info.info({
        "version": version,
        "environment": environment
    })


def record_detection(category: str, failed: bool, latency_seconds: float):
    """Record a finished detection call."""
    outcome = "failed" if failed else "classified"
    nsfw_detections_total.labels(category=category, outcome=outcome).inc()
    nsfw_detection_latency_seconds.observe(latency_seconds)


def record_inference_latency(latency_seconds: float):
    nsfw_inference_latency_seconds.observe(latency_seconds)


def record_model_load_time(load_time_seconds: float):
    """Record model loading time."""
    nsfw_model_load_seconds.observe(load_time_seconds)


def record_model_init_failure():
    nsfw_model_init_failures_total.inc()


def record_audit_entry(is_nsfw: bool):
    nsfw_audit_records_total.labels(verdict="blocked" if is_nsfw else "allowed").inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
