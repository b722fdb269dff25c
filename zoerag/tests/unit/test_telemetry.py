from __future__ import annotations

from zoerag.services.telemetry import (
    counters_snapshot,
    external_latency_by_integration,
    increment_counter,
    p95_latency,
    record_external_call,
    record_request,
    record_stream_duration,
    stream_duration_stats,
)


def test_request_latency_filters_by_path() -> None:
    for latency in (10.0, 20.0, 30.0):
        record_request(path="/v1/chat", status_code=200, latency_ms=latency)
    record_request(path="/v1/health", status_code=200, latency_ms=500.0)
    assert p95_latency(60, path_prefix="/v1/chat") == 30.0
    assert p95_latency(60) == 500.0


def test_external_calls_are_grouped_by_integration() -> None:
    record_external_call(integration="embeddings.openai", latency_ms=100.0, success=True)
    record_external_call(integration="embeddings.openai", latency_ms=300.0, success=False)
    stats = external_latency_by_integration(60)
    assert stats["embeddings.openai"] == {"p95": 300.0, "max": 300.0, "failures": 1}


def test_stream_durations_and_counters() -> None:
    assert stream_duration_stats() == {"p95": None, "max": None}
    record_stream_duration(1200.0)
    increment_counter("stream_errors_total")
    increment_counter("stream_errors_total")
    assert stream_duration_stats()["max"] == 1200.0
    assert counters_snapshot() == {"stream_errors_total": 2}
