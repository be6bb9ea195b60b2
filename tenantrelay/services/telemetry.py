from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class ExternalCallSample:
    ts: float
    integration: str
    latency_ms: float
    success: bool


_external_samples: Deque[ExternalCallSample] = deque(maxlen=10000)
_counters: dict[str, int] = defaultdict(int)
_gauges: dict[str, float] = {}


def record_external_call(*, integration: str, latency_ms: float, success: bool) -> None:
    # Capture provider probe latency and outcomes.
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


def set_gauge(name: str, value: float) -> None:
    _gauges[name] = float(value)


def external_latency_by_integration(window_s: int) -> dict[str, dict[str, float | None]]:
    # Aggregate probe latency per integration type in the window.
    cutoff = time.time() - window_s
    by_integration: dict[str, list[float]] = defaultdict(list)
    for sample in _external_samples:
        if sample.ts < cutoff:
            continue
        by_integration[sample.integration].append(sample.latency_ms)
    result: dict[str, dict[str, float | None]] = {}
    for integration, latencies in by_integration.items():
        latencies.sort()
        p95_idx = max(0, math.ceil(0.95 * len(latencies)) - 1)
        result[integration] = {
            "p95": latencies[p95_idx],
            "max": latencies[-1],
        }
    return result


def counters_snapshot() -> dict[str, int]:
    return dict(_counters)


def gauges_snapshot() -> dict[str, float]:
    return dict(_gauges)


def reset_telemetry() -> None:
    # Clear in-process state between tests.
    _external_samples.clear()
    _counters.clear()
    _gauges.clear()
