"""
Prometheus metrics for the age verification API, exposed at /metrics.
"""
import time
import logging
from fastapi import APIRouter, Request, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

router = APIRouter()

REQUEST_COUNT = Counter(
    "agecheck_requests_total",
    "Total number of requests",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "agecheck_request_latency_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

# Which fields the pipeline resolved, and from where (region / document / missing)
FIELD_EXTRACTIONS = Counter(
    "agecheck_field_extractions_total",
    "Document fields resolved by the extraction pipeline",
    ["field", "source"]
)

# Re-validation gate outcomes (server / client / rejected)
REVALIDATIONS = Counter(
    "agecheck_revalidations_total",
    "Server-side birth date re-validation outcomes",
    ["path", "outcome"]
)


def record_extraction(data) -> None:
    """Count field outcomes of one ``ExtractedDocumentData``."""
    for key, result in data.fields.items():
        FIELD_EXTRACTIONS.labels(field=key, source=result.source or "missing").inc()


def record_revalidation(path: str, outcome: str) -> None:
    REVALIDATIONS.labels(path=path, outcome=outcome).inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect request count and latency per route."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()
        response = await call_next(request)
        latency = time.time() - start_time

        # Route template, so path parameters do not explode label cardinality
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(latency)

        return response


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
