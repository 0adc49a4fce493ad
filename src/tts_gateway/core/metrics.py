"""
Prometheus metrics for tts-gateway.

All collectors live in a private CollectorRegistry so tests and embedding
applications do not collide with the default global registry.

Metrics:
    tts_gateway_requests_total              requests by path and status
    tts_gateway_request_duration_seconds    latency by path and cache status
    tts_gateway_cache_lookups_total         lookups by tier and result
    tts_gateway_rate_limited_total          requests rejected by the limiter
    tts_gateway_dispatch_total              backend calls by backend and status
    tts_gateway_characters_total            characters sent to backends

Usage:
    from tts_gateway.core.metrics import metrics

    metrics.record_request("utterance", "success", 0.42, cache_status="ephemeral")
    content, content_type = metrics.get_metrics_response()
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class GatewayMetrics:
    """
    Metric collection for the synthesis paths.

    The `enabled` flag (metrics.enabled in settings.yaml) turns every
    record_* call into a no-op; /metrics still answers with an empty
    exposition.
    """

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self._registry = CollectorRegistry()

        self._requests_total = Counter(
            "tts_gateway_requests_total",
            "Total synthesis requests",
            ["path", "status"],
            registry=self._registry,
        )
        self._request_duration = Histogram(
            "tts_gateway_request_duration_seconds",
            "Synthesis request duration in seconds",
            ["path", "cache_status"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self._registry,
        )
        self._cache_lookups = Counter(
            "tts_gateway_cache_lookups_total",
            "Two-tier cache lookups",
            ["tier", "result"],
            registry=self._registry,
        )
        self._rate_limited = Counter(
            "tts_gateway_rate_limited_total",
            "Requests rejected by the character budget",
            registry=self._registry,
        )
        self._dispatch_total = Counter(
            "tts_gateway_dispatch_total",
            "Backend synthesis calls",
            ["backend", "status"],
            registry=self._registry,
        )
        self._characters_total = Counter(
            "tts_gateway_characters_total",
            "Characters sent to synthesis backends",
            registry=self._registry,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    def record_request(self, path: str, status: str, duration: float, cache_status: str = "none") -> None:
        """
        Record a finished request.

        Args:
            path: "utterance" or "document".
            status: "success" or an ErrorCode value.
            duration: Wall time in seconds.
            cache_status: "ephemeral", "durable", "miss", "empty" or "none".
        """
        if not self._enabled:
            return
        self._requests_total.labels(path=path, status=status).inc()
        self._request_duration.labels(path=path, cache_status=cache_status).observe(duration)

    def record_cache(self, tier: str, result: str) -> None:
        """Record one tier lookup ("ephemeral"/"durable", "hit"/"miss"/"error")."""
        if not self._enabled:
            return
        self._cache_lookups.labels(tier=tier, result=result).inc()

    def record_rate_limited(self) -> None:
        if not self._enabled:
            return
        self._rate_limited.inc()

    def record_dispatch(self, backend: str, status: str, characters: int = 0) -> None:
        if not self._enabled:
            return
        self._dispatch_total.labels(backend=backend, status=status).inc()
        if characters > 0:
            self._characters_total.inc(characters)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Prometheus exposition as (content, content_type)."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Global instance; import this to record metrics.
metrics = GatewayMetrics()
