"""Tests for Prometheus metrics."""
from __future__ import annotations

from prometheus_client.parser import text_string_to_metric_families

from tts_gateway.core.metrics import GatewayMetrics, metrics


def _samples(m: GatewayMetrics):
    content, _ = m.get_metrics_response()
    out = {}
    for family in text_string_to_metric_families(content.decode("utf-8")):
        for sample in family.samples:
            out[(sample.name, tuple(sorted(sample.labels.items())))] = sample.value
    return out


class TestMetricsModule:
    def test_global_instance(self):
        assert isinstance(metrics, GatewayMetrics)
        assert isinstance(metrics.enabled, bool)

    def test_record_request(self):
        m = GatewayMetrics()
        m.record_request("utterance", "success", 0.2, cache_status="miss")
        m.record_request("utterance", "RATE_LIMITED", -1)
        samples = _samples(m)
        assert samples[("tts_gateway_requests_total", (("path", "utterance"), ("status", "success")))] == 1
        assert samples[("tts_gateway_requests_total", (("path", "utterance"), ("status", "RATE_LIMITED")))] == 1

    def test_record_cache_and_dispatch(self):
        m = GatewayMetrics()
        m.record_cache("ephemeral", "hit")
        m.record_cache("durable", "miss")
        m.record_dispatch("azure", "success", characters=12)
        m.record_rate_limited()
        samples = _samples(m)
        assert samples[("tts_gateway_cache_lookups_total", (("result", "hit"), ("tier", "ephemeral")))] == 1
        assert samples[("tts_gateway_dispatch_total", (("backend", "azure"), ("status", "success")))] == 1
        assert samples[("tts_gateway_characters_total", ())] == 12
        assert samples[("tts_gateway_rate_limited_total", ())] == 1

    def test_disabled_is_noop(self):
        m = GatewayMetrics(enabled=False)
        m.record_rate_limited()
        assert _samples(m)[("tts_gateway_rate_limited_total", ())] == 0

    def test_instances_are_isolated(self):
        a, b = GatewayMetrics(), GatewayMetrics()
        a.record_rate_limited()
        assert _samples(b)[("tts_gateway_rate_limited_total", ())] == 0

    def test_content_type(self):
        _, content_type = GatewayMetrics().get_metrics_response()
        assert content_type.startswith("text/plain")
