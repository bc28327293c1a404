"""Prometheus metrics: HTTP middleware plus lifecycle and scheduler counters."""
import time
from typing import Callable

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


# =============================================================================
# Prometheus Metrics Definitions
# =============================================================================

# Request metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_requests_active",
    "Number of active HTTP requests",
)

# Lifecycle metrics
CAMPAIGN_TRANSITIONS = Counter(
    "campaign_transitions_total",
    "Committed campaign status transitions",
    ["from_status", "to_status"],
)

PAYMENT_INTENT_TRANSITIONS = Counter(
    "payment_intent_transitions_total",
    "Committed payment intent status transitions",
    ["from_status", "to_status"],
)

INVOICES_GENERATED = Counter(
    "invoices_generated_total",
    "Invoices created at campaign lock or settlement recovery",
)

# Scheduler metrics
SCHEDULER_JOB_ITEMS = Counter(
    "scheduler_job_items_total",
    "Items processed by scheduler jobs",
    ["job", "outcome"],  # succeeded, failed, skipped
)

SCHEDULER_JOB_DURATION = Histogram(
    "scheduler_job_duration_seconds",
    "Scheduler job run duration in seconds",
    ["job"],
    buckets=[0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0],
)


# =============================================================================
# Metrics Middleware
# =============================================================================

class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware to collect Prometheus metrics for all HTTP requests."""

    # Endpoints to normalize for metrics (reduce cardinality)
    ENDPOINT_PATTERNS = {
        "/api/v1/campaigns": "/api/v1/campaigns",
        "/api/v1/invoices": "/api/v1/invoices",
        "/api/v1/payment-intents": "/api/v1/payment-intents",
        "/api/v1/pledges": "/api/v1/pledges",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip metrics endpoint to avoid recursion
        if request.url.path == "/metrics":
            return await call_next(request)

        ACTIVE_REQUESTS.inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            status_code = 500
            raise
        finally:
            ACTIVE_REQUESTS.dec()
            latency = time.perf_counter() - start_time
            endpoint = self._normalize_endpoint(request.url.path)

            REQUEST_COUNT.labels(
                method=request.method,
                endpoint=endpoint,
                status=status_code,
            ).inc()

            REQUEST_LATENCY.labels(
                method=request.method,
                endpoint=endpoint,
            ).observe(latency)

        return response

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce metric cardinality."""
        for pattern, normalized in self.ENDPOINT_PATTERNS.items():
            if path.startswith(pattern):
                return normalized

        if path in ("/health", "/metrics"):
            return path

        return "/other"


# =============================================================================
# Metrics Endpoint
# =============================================================================

async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics scrape endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# =============================================================================
# Helper Functions for Manual Metric Recording
# =============================================================================

def record_campaign_transition(from_status, to_status) -> None:
    CAMPAIGN_TRANSITIONS.labels(from_status=from_status.value, to_status=to_status.value).inc()


def record_payment_intent_transition(from_status, to_status) -> None:
    PAYMENT_INTENT_TRANSITIONS.labels(
        from_status=from_status.value, to_status=to_status.value
    ).inc()


def record_invoices_generated(count: int) -> None:
    if count:
        INVOICES_GENERATED.inc(count)


def record_job_items(job: str, succeeded: int, failed: int, skipped: int) -> None:
    """Record the per-item outcome counts of one scheduler job run."""
    for outcome, count in (("succeeded", succeeded), ("failed", failed), ("skipped", skipped)):
        if count:
            SCHEDULER_JOB_ITEMS.labels(job=job, outcome=outcome).inc(count)


def record_job_duration(job: str, duration: float) -> None:
    SCHEDULER_JOB_DURATION.labels(job=job).observe(duration)
