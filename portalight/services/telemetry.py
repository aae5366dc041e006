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


@dataclass(frozen=True)
class SyncRunSample:
    ts: float
    sync_type: str
    status: str
    error_kind: str | None
    duration_ms: int


_external_samples: Deque[ExternalCallSample] = deque(maxlen=10000)
_sync_samples: Deque[SyncRunSample] = deque(maxlen=5000)
_counters: dict[str, int] = defaultdict(int)


def record_external_call(*, integration: str, latency_ms: float, success: bool) -> None:
    # Capture repository host latency and outcomes.
    _external_samples.append(
        ExternalCallSample(
            ts=time.time(),
            integration=integration,
            latency_ms=latency_ms,
            success=success,
        )
    )


def record_sync_run(*, sync_type: str, status: str, error_kind: str | None, duration_ms: int) -> None:
    _sync_samples.append(
        SyncRunSample(
            ts=time.time(),
            sync_type=sync_type,
            status=status,
            error_kind=error_kind,
            duration_ms=duration_ms,
        )
    )
    increment_counter(f"catalog_sync_runs_total.{status}")
    if error_kind:
        increment_counter(f"catalog_sync_failures_total.{error_kind}")


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def counters() -> dict[str, int]:
    return dict(_counters)


def _percentile(values: list[float], pct: float) -> float | None:
    if not values:
        return None
    ordered = sorted(values)
    rank = max(0, math.ceil((pct / 100.0) * len(ordered)) - 1)
    return ordered[rank]


def sync_stats(window_s: int = 3600) -> dict[str, float | int | None]:
    # Summarize recent runs for operator dashboards.
    cutoff = time.time() - window_s
    samples = [sample for sample in _sync_samples if sample.ts >= cutoff]
    durations = [float(sample.duration_ms) for sample in samples]
    failed = sum(1 for sample in samples if sample.status != "success")
    return {
        "runs": len(samples),
        "failed": failed,
        "p50_duration_ms": _percentile(durations, 50),
        "p95_duration_ms": _percentile(durations, 95),
    }


def external_stats(integration: str, window_s: int = 3600) -> dict[str, float | int | None]:
    cutoff = time.time() - window_s
    samples = [
        sample
        for sample in _external_samples
        if sample.ts >= cutoff and sample.integration == integration
    ]
    latencies = [sample.latency_ms for sample in samples]
    return {
        "calls": len(samples),
        "errors": sum(1 for sample in samples if not sample.success),
        "p95_latency_ms": _percentile(latencies, 95),
    }


def reset() -> None:
    # Allow tests to start from empty counters.
    _external_samples.clear()
    _sync_samples.clear()
    _counters.clear()
