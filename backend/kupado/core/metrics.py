"""
Prometheus metrics.

Metric families:
- RED metrics for the HTTP surface
- AI generation metrics (per feature and provider)
- Cache hit/miss counters for the AI cache and the similar-ads cache
- Process resource gauges

Naming follows Prometheus conventions: counters end in ``_total``,
durations are histograms in seconds.
"""
from typing import Optional

import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from kupado.core.logging import get_logger

logger = get_logger(__name__)

registry = REGISTRY

# HTTP

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP responses with a 4xx or 5xx status",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=registry,
)

# AI generation

ai_generation_requests_total = Counter(
    "ai_generation_requests_total",
    "Generation calls issued by the orchestrator",
    ["feature", "provider", "status"],  # status: success | error | overloaded
    registry=registry,
)

ai_generation_latency_seconds = Histogram(
    "ai_generation_latency_seconds",
    "Wall-clock time spent inside the provider call",
    ["feature", "provider"],
    buckets=[0.25, 0.5, 1.0, 2.0, 4.0, 8.0, 15.0, 30.0, 60.0],
    registry=registry,
)

ai_provider_errors_total = Counter(
    "ai_provider_errors_total",
    "Provider failures by classification",
    ["provider", "error_type"],
    registry=registry,
)

ai_background_task_failures_total = Counter(
    "ai_background_task_failures_total",
    "Best-effort writes (usage logs, cache entries) that failed",
    ["task"],
    registry=registry,
)

# Caches

cache_hits_total = Counter(
    "cache_hits_total",
    "Total number of cache hits",
    ["cache_type"],
    registry=registry,
)

cache_misses_total = Counter(
    "cache_misses_total",
    "Total number of cache misses",
    ["cache_type"],
    registry=registry,
)

# Resources

process_cpu_usage_percent = Gauge(
    "process_cpu_usage_percent",
    "CPU usage of the API process",
    registry=registry,
)

process_memory_rss_bytes = Gauge(
    "process_memory_rss_bytes",
    "Resident memory of the API process",
    registry=registry,
)

_process: Optional[psutil.Process] = None


def normalize_endpoint(path: str) -> str:
    """
    Strip the query string so label cardinality stays bounded.

    All routes of this API use fixed paths, so nothing else needs collapsing.
    """
    return path.split("?", 1)[0]


def record_http_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    normalized = normalize_endpoint(endpoint)
    http_requests_total.labels(method=method, endpoint=normalized, status=str(status_code)).inc()
    if status_code >= 400:
        http_errors_total.labels(
            method=method,
            endpoint=normalized,
            status_code=str(status_code),
        ).inc()
    http_request_duration_seconds.labels(method=method, endpoint=normalized).observe(duration_seconds)


def record_ai_generation(feature: str, provider: str, status: str, duration_ms: Optional[int] = None) -> None:
    """
    Record one provider call made by the orchestrator.

    Args:
        feature: FeatureType value
        provider: "gemini" or "claude"
        status: "success", "error" or "overloaded"
        duration_ms: Measured generation latency, when the call returned
    """
    ai_generation_requests_total.labels(feature=feature, provider=provider, status=status).inc()
    if duration_ms is not None:
        ai_generation_latency_seconds.labels(feature=feature, provider=provider).observe(duration_ms / 1000.0)


def record_provider_error(provider: str, error_type: str) -> None:
    ai_provider_errors_total.labels(provider=provider, error_type=error_type).inc()


def record_background_failure(task: str) -> None:
    ai_background_task_failures_total.labels(task=task).inc()


def record_cache_hit(cache_type: str) -> None:
    cache_hits_total.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str) -> None:
    cache_misses_total.labels(cache_type=cache_type).inc()


def update_resource_metrics() -> None:
    """Refresh the process gauges. Called on every scrape."""
    global _process
    try:
        if _process is None:
            _process = psutil.Process()
        process_cpu_usage_percent.set(_process.cpu_percent(interval=None))
        process_memory_rss_bytes.set(_process.memory_info().rss)
    except psutil.Error as e:
        logger.warning(
            "metrics_resource_update_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


def get_metrics() -> bytes:
    update_resource_metrics()
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
