"""
Prometheus metrics for the image server.

Provides:
- Image request counts by outcome (hit, miss, passthrough, fallback, ...)
- Transform latency histogram
- Cache write failures
- Sweep deletions and bytes reclaimed
- Cache size gauges

Usage:
    from imgserve.orchestrator.prometheus_metrics import metrics_router, metrics_collector
    app.include_router(metrics_router)
"""

from prometheus_client import (
    Counter, Gauge, Histogram, Info,
    generate_latest, CONTENT_TYPE_LATEST,
    CollectorRegistry
)
from fastapi import Response, APIRouter
from typing import Optional

# Custom registry so app instances created in tests don't collide
REGISTRY = CollectorRegistry()

# ============ Server Info ============
SERVER_INFO = Info(
    'imgserve_server',
    'Image server information',
    registry=REGISTRY
)

# ============ Request Metrics ============
IMAGE_REQUESTS = Counter(
    'imgserve_image_requests_total',
    'Image requests by outcome',
    ['outcome'],
    registry=REGISTRY
)

IMAGE_ERRORS = Counter(
    'imgserve_image_errors_total',
    'Image requests rejected, by HTTP status',
    ['status'],
    registry=REGISTRY
)

TRANSFORM_LATENCY = Histogram(
    'imgserve_transform_latency_seconds',
    'Decode + resize + encode time',
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY
)

TRANSFORM_FAILURES = Counter(
    'imgserve_transform_failures_total',
    'Transforms that failed and fell back to the original',
    registry=REGISTRY
)

# ============ Cache Metrics ============
CACHE_WRITE_FAILURES = Counter(
    'imgserve_cache_write_failures_total',
    'Renditions that could not be persisted',
    registry=REGISTRY
)

SWEEP_DELETED = Counter(
    'imgserve_sweep_deleted_total',
    'Cache entries deleted by sweep/clear',
    registry=REGISTRY
)

SWEEP_BYTES_FREED = Counter(
    'imgserve_sweep_bytes_freed_total',
    'Bytes reclaimed by sweep/clear',
    registry=REGISTRY
)

CACHE_ENTRIES = Gauge(
    'imgserve_cache_entries',
    'Entries in the disk cache at last measurement',
    registry=REGISTRY
)

CACHE_BYTES = Gauge(
    'imgserve_cache_bytes',
    'Bytes in the disk cache at last measurement',
    registry=REGISTRY
)


class MetricsCollector:
    """
    Centralized metrics collection.

    prometheus_client metrics are thread-safe, so this is a thin facade.
    """

    def set_server_info(self, version: str, cache_dir: Optional[str] = None):
        """Set server info metric."""
        SERVER_INFO.info({
            'version': version,
            'cache_dir': cache_dir or 'none'
        })

    def record_outcome(self, outcome: str) -> None:
        """Record how an image request was served."""
        IMAGE_REQUESTS.labels(outcome=outcome).inc()

    def record_error(self, status: int) -> None:
        IMAGE_ERRORS.labels(status=str(status)).inc()

    def record_transform(self, seconds: float) -> None:
        TRANSFORM_LATENCY.observe(seconds)

    def record_transform_failure(self) -> None:
        TRANSFORM_FAILURES.inc()

    def record_cache_write_failure(self) -> None:
        CACHE_WRITE_FAILURES.inc()

    def record_sweep(self, deleted: int, bytes_freed: int) -> None:
        """Record entries removed by a sweep or clear."""
        SWEEP_DELETED.inc(deleted)
        SWEEP_BYTES_FREED.inc(bytes_freed)

    def update_cache_size(self, entries: int, total_bytes: int) -> None:
        CACHE_ENTRIES.set(entries)
        CACHE_BYTES.set(total_bytes)


# Global collector instance
metrics_collector = MetricsCollector()


# ============ FastAPI Router ============
metrics_router = APIRouter()


@metrics_router.get("/metrics")
async def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text exposition format.
    """
    return Response(
        content=generate_latest(REGISTRY),
        media_type=CONTENT_TYPE_LATEST
    )
