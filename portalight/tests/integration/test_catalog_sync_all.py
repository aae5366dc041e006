from __future__ import annotations

import pytest

from portalight.core.errors import CatalogSourceConfigError, ManifestAccessDeniedError
from portalight.domain.models import RUN_STATUS_FAILED, RUN_STATUS_PARTIAL, RUN_STATUS_SUCCESS
from portalight.persistence.repos import source_state as source_state_repo
from portalight.persistence.repos import sync_runs as sync_runs_repo
from portalight.providers.manifests.fake import FakeManifestFetcher
from portalight.services.catalog.orchestrator import SyncActor
from portalight.services.catalog.orphans import list_orphans
from portalight.tests.utils.manifests import manifest_yaml, service
from portalight.tests.utils.store import load_project


class DeniedFetcher(FakeManifestFetcher):
    async def list_files(self, prefix: str) -> list[str]:
        raise ManifestAccessDeniedError("access denied by repository host (status 403)")


@pytest.mark.asyncio
async def test_scan_lists_yaml_under_projects_path(make_syncer, session_factory) -> None:
    syncer, _ = make_syncer(
        {
            "projects/payments.yaml": "",
            "projects/search.YML": "",
            "projects/README.md": "",
            "projects/nested/ledger.yml": "",
            "other/alpha.yaml": "",
        }
    )

    paths = await syncer.scan()

    assert paths == ["projects/nested/ledger.yml", "projects/payments.yaml", "projects/search.YML"]
    async with session_factory() as session:
        state = await source_state_repo.get_state(session, syncer.source.source_id)
    assert state.last_scan_status == "success"
    assert state.last_scan_file_count == 3
    assert state.last_scan_error is None


@pytest.mark.asyncio
async def test_scan_failure_is_recorded_and_raised(make_syncer, session_factory) -> None:
    syncer, _ = make_syncer(fetcher=DeniedFetcher())

    with pytest.raises(ManifestAccessDeniedError):
        await syncer.scan()

    async with session_factory() as session:
        state = await source_state_repo.get_state(session, syncer.source.source_id)
    assert state.last_scan_status == "failed"
    assert "access denied" in state.last_scan_error


@pytest.mark.asyncio
async def test_scan_requires_repository_settings(make_syncer) -> None:
    syncer, _ = make_syncer({}, catalog_repo_owner="")

    with pytest.raises(CatalogSourceConfigError):
        await syncer.scan()


@pytest.mark.asyncio
async def test_sync_all_isolates_failing_files(make_syncer, session_factory, teams) -> None:
    syncer, _ = make_syncer(
        {
            "projects/payments.yaml": manifest_yaml(),
            "projects/broken.yaml": manifest_yaml("broken", title="Broken", owner="ghost-team"),
            "projects/notes.txt": "not a manifest",
        }
    )

    summary = await syncer.sync_all(SyncActor(name="scheduler"), sync_type="scheduled")

    assert summary.status == RUN_STATUS_PARTIAL
    assert summary.files == ["projects/broken.yaml", "projects/payments.yaml"]
    assert (summary.succeeded, summary.failed) == (1, 1)
    assert summary.counts.services_created == 2
    assert {run.sync_type for run in summary.runs} == {"scheduled"}
    payload = summary.as_dict()
    assert payload["status"] == "partial"
    assert [run["status"] for run in payload["runs"]] == ["failed", "success"]
    assert await load_project(session_factory, "projects/payments.yaml") is not None


@pytest.mark.asyncio
async def test_sync_all_status_reflects_outcomes(make_syncer, teams) -> None:
    ok_syncer, _ = make_syncer({"projects/payments.yaml": manifest_yaml()})
    assert (await ok_syncer.sync_all()).status == RUN_STATUS_SUCCESS

    bad_syncer, _ = make_syncer({"projects/broken.yaml": "metadata: [unclosed"})
    assert (await bad_syncer.sync_all()).status == RUN_STATUS_FAILED


@pytest.mark.asyncio
async def test_run_history_and_orphan_queue(make_syncer, session_factory, teams) -> None:
    path = "projects/payments.yaml"
    syncer, fetcher = make_syncer({path: manifest_yaml()})
    first = await syncer.sync_file(path)
    fetcher.put(path, manifest_yaml(services=[service("payments-api")]))
    second = await syncer.sync_file(path)

    async with session_factory() as session:
        runs = await sync_runs_repo.list_runs(session, catalog_file_path=path)
        by_project = await sync_runs_repo.list_runs(session, project_id=first.project_id, limit=1)
        fetched = await sync_runs_repo.get_run(session, first.id)
        failed = await sync_runs_repo.list_runs(session, status="failed")
        orphans = await list_orphans(session)
        project_orphans = await list_orphans(session, first.project_id)

    assert [run.id for run in runs] == [second.id, first.id]
    assert [run.id for run in by_project] == [second.id]
    assert fetched.services_created == 2
    assert failed == []
    assert [service.name for service in orphans] == ["payments-worker"]
    assert [service.name for service in project_orphans] == ["payments-worker"]
