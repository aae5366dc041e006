from __future__ import annotations

from portalight.services import telemetry


def test_record_sync_run_counts_outcomes() -> None:
    telemetry.record_sync_run(sync_type="manual", status="success", error_kind=None, duration_ms=10)
    telemetry.record_sync_run(sync_type="webhook", status="failed", error_kind="validation", duration_ms=30)
    telemetry.record_sync_run(sync_type="manual", status="failed", error_kind="validation", duration_ms=20)

    counters = telemetry.counters()
    assert counters["catalog_sync_runs_total.success"] == 1
    assert counters["catalog_sync_runs_total.failed"] == 2
    assert counters["catalog_sync_failures_total.validation"] == 2

    stats = telemetry.sync_stats()
    assert stats["runs"] == 3
    assert stats["failed"] == 2
    assert stats["p50_duration_ms"] == 20.0
    assert stats["p95_duration_ms"] == 30.0


def test_reset_clears_samples() -> None:
    telemetry.record_external_call(integration="manifests.github", latency_ms=5.0, success=False)
    telemetry.increment_counter("custom")

    telemetry.reset()

    assert telemetry.counters() == {}
    assert telemetry.external_stats("manifests.github")["calls"] == 0
