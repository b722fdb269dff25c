from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class RequestSample:
    ts: float
    path: str
    status_code: int
    latency_ms: float


@dataclass(frozen=True)
class ExternalCallSample:
    ts: float
    integration: str
    latency_ms: float
    success: bool


_request_samples: Deque[RequestSample] = deque(maxlen=20000)
_stream_samples: Deque[float] = deque(maxlen=5000)
_external_samples: Deque[ExternalCallSample] = deque(maxlen=10000)
_counters: dict[str, int] = defaultdict(int)


def record_request(*, path: str, status_code: int, latency_ms: float) -> None:
    _request_samples.append(
        RequestSample(ts=time.time(), path=path, status_code=status_code, latency_ms=latency_ms)
    )


def record_stream_duration(duration_ms: float) -> None:
    # Track SSE relay durations separately; request latency only covers time to first byte.
    _stream_samples.append(duration_ms)


def record_external_call(*, integration: str, latency_ms: float, success: bool) -> None:
    _external_samples.append(
        ExternalCallSample(
            ts=time.time(),
            integration=integration,
            latency_ms=latency_ms,
            success=success,
        )
    )


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def _p95(values: list[float]) -> float | None:
    if not values:
        return None
    ordered = sorted(values)
    idx = max(0, math.ceil(0.95 * len(ordered)) - 1)
    return ordered[idx]


def p95_latency(window_s: int, *, path_prefix: str | None = None) -> float | None:
    cutoff = time.time() - window_s
    samples = [sample for sample in _request_samples if sample.ts >= cutoff]
    if path_prefix:
        samples = [sample for sample in samples if sample.path.startswith(path_prefix)]
    return _p95([sample.latency_ms for sample in samples])


def external_latency_by_integration(window_s: int) -> dict[str, dict[str, float | int | None]]:
    cutoff = time.time() - window_s
    by_integration: dict[str, list[ExternalCallSample]] = defaultdict(list)
    for sample in _external_samples:
        if sample.ts < cutoff:
            continue
        by_integration[sample.integration].append(sample)
    result: dict[str, dict[str, float | int | None]] = {}
    for integration, samples in by_integration.items():
        latencies = [sample.latency_ms for sample in samples]
        result[integration] = {
            "p95": _p95(latencies),
            "max": max(latencies),
            "failures": sum(1 for sample in samples if not sample.success),
        }
    return result


def stream_duration_stats() -> dict[str, float | None]:
    if not _stream_samples:
        return {"p95": None, "max": None}
    return {"p95": _p95(list(_stream_samples)), "max": max(_stream_samples)}


def counters_snapshot() -> dict[str, int]:
    return dict(_counters)


def reset() -> None:
    # Tests share the process-wide buffers; clear them between cases.
    _request_samples.clear()
    _stream_samples.clear()
    _external_samples.clear()
    _counters.clear()
