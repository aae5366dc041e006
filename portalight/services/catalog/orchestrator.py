from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portalight.core.config import Settings, get_settings
from portalight.core.errors import (
    CatalogSourceConfigError,
    DatabaseError,
    ManifestFetchError,
    SyncInProgressError,
)
from portalight.domain.catalog import CatalogDocument
from portalight.domain.models import (
    RUN_STATUS_FAILED,
    RUN_STATUS_PARTIAL,
    RUN_STATUS_SUCCESS,
    SYNC_STATUS_FAILED,
    SYNC_STATUS_SYNCING,
    SYNC_TYPE_MANUAL,
    SYNC_TYPES,
    CatalogSyncRun,
)
from portalight.persistence.db import SessionLocal
from portalight.persistence.repos import projects as projects_repo
from portalight.persistence.repos import source_state as source_state_repo
from portalight.persistence.repos import sync_runs as sync_runs_repo
from portalight.providers.manifests.base import ManifestFetcher
from portalight.providers.manifests.config import CatalogSourceConfig, is_manifest_path
from portalight.services.catalog.locks import RunTokens, get_run_tokens
from portalight.services.catalog.orphans import detect_orphans
from portalight.services.catalog.parser import parse_manifest
from portalight.services.catalog.resolver import ResolvedDocument, resolve_owners
from portalight.services.catalog.results import (
    ERROR_KIND_BUSY,
    ERROR_KIND_CONFIG,
    ERROR_KIND_FETCH,
    ERROR_KIND_INTERNAL,
    ERROR_KIND_PERSISTENCE,
    ERROR_KIND_TIMEOUT,
    ERROR_KIND_VALIDATION,
    FieldError,
    StageFailed,
    StageOk,
    StageResult,
)
from portalight.services.catalog.upsert import SyncCounts, upsert_project, upsert_service
from portalight.services.catalog.validator import validate_catalog_conflicts, validate_document
from portalight.services.telemetry import record_sync_run


logger = logging.getLogger(__name__)

STAGE_FETCHING = "fetching"
STAGE_PARSING = "parsing"
STAGE_VALIDATING = "validating"
STAGE_RESOLVING = "resolving"
STAGE_UPSERTING = "upserting"
STAGE_DETECTING_ORPHANS = "detecting_orphans"
STAGE_RECORDING = "recording"
STAGE_DONE = "done"

SCAN_STATUS_SUCCESS = "success"
SCAN_STATUS_FAILED = "failed"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SyncActor:
    # Who triggered the run; webhooks and schedulers use a display name only.
    id: str | None = None
    name: str | None = None


@dataclass
class _SyncContext:
    path: str
    sync_type: str
    actor: SyncActor
    started_at: datetime
    stage: str = STAGE_FETCHING
    project_id: str | None = None
    project_name: str | None = None
    counts: SyncCounts = field(default_factory=SyncCounts)
    failure: StageFailed | None = None

    def fail(self, kind: str, message: str, errors: tuple[FieldError, ...] = ()) -> None:
        self.failure = StageFailed(kind, message, errors)

    def fail_with(self, failure: StageFailed) -> None:
        self.failure = failure


@dataclass
class SyncAllSummary:
    status: str
    files: list[str]
    runs: list[CatalogSyncRun]
    succeeded: int = 0
    failed: int = 0
    counts: SyncCounts = field(default_factory=SyncCounts)

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "files": list(self.files),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "projects_created": self.counts.projects_created,
            "projects_updated": self.counts.projects_updated,
            "services_created": self.counts.services_created,
            "services_updated": self.counts.services_updated,
            "services_orphaned": self.counts.services_orphaned,
            "runs": [run_as_dict(run) for run in self.runs],
        }


def run_as_dict(run: CatalogSyncRun) -> dict[str, Any]:
    # Structured result for API and CLI callers, including per-field validation feedback.
    return {
        "id": run.id,
        "sync_type": run.sync_type,
        "project_id": run.project_id,
        "project_name": run.project_name,
        "catalog_file_path": run.catalog_file_path,
        "status": run.status,
        "projects_created": run.projects_created,
        "projects_updated": run.projects_updated,
        "services_created": run.services_created,
        "services_updated": run.services_updated,
        "services_orphaned": run.services_orphaned,
        "error_kind": run.error_kind,
        "error_message": run.error_message,
        "validation_errors": list(run.validation_errors or []),
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "duration_ms": run.duration_ms,
        "synced_by": run.synced_by,
        "synced_by_name": run.synced_by_name,
    }


class CatalogSyncer:
    """Reconcile manifest files from the catalog repository into the catalog store.

    Each file runs ``fetching -> parsing -> validating -> resolving ->
    upserting -> detecting_orphans -> recording``. A failure in any stage
    jumps straight to ``recording``; exactly one run row is written per call.
    Fetch through resolution never write to the store. With
    ``catalog_sync_atomic`` the upsert and orphan stages share one
    transaction, otherwise each step commits and the run reports partial
    counts.
    """

    def __init__(
        self,
        source: CatalogSourceConfig,
        fetcher: ManifestFetcher,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        settings: Settings | None = None,
        run_tokens: RunTokens | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._source = source
        self._fetcher = fetcher
        self._session_factory = session_factory or SessionLocal
        self._settings = settings or get_settings()
        self._run_tokens = run_tokens or get_run_tokens()
        self._clock = clock or _utc_now

    @property
    def source(self) -> CatalogSourceConfig:
        return self._source

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    async def scan(self) -> list[str]:
        """List manifest paths under the configured projects path."""
        self._source.require_usable()
        scanned_at = self._clock()
        try:
            files = await asyncio.wait_for(
                self._fetcher.list_files(self._source.normalized_prefix),
                timeout=self._settings.catalog_fetch_timeout_s,
            )
        except (ManifestFetchError, asyncio.TimeoutError) as exc:
            message = str(exc) or "manifest listing timed out"
            logger.warning("catalog_scan_failed source=%s error=%s", self._source.source_id, message)
            await self._record_scan(scanned_at, SCAN_STATUS_FAILED, error=message)
            if isinstance(exc, asyncio.TimeoutError):
                raise ManifestFetchError(message) from exc
            raise
        paths = sorted(path for path in files if is_manifest_path(path, self._source.normalized_prefix))
        await self._record_scan(scanned_at, SCAN_STATUS_SUCCESS, file_count=len(paths))
        logger.info("catalog_scan_completed source=%s files=%s", self._source.source_id, len(paths))
        return paths

    async def _record_scan(
        self,
        scanned_at: datetime,
        status: str,
        *,
        error: str | None = None,
        file_count: int | None = None,
    ) -> None:
        # Scan status is informational; a store hiccup must not hide the listing result.
        try:
            async with self._session_factory() as session:
                await source_state_repo.record_scan(
                    session,
                    self._source.source_id,
                    scanned_at=scanned_at,
                    status=status,
                    error=error,
                    file_count=file_count,
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.warning("catalog_scan_state_write_failed source=%s", self._source.source_id, exc_info=exc)

    async def sync_file(
        self,
        path: str,
        actor: SyncActor | None = None,
        *,
        sync_type: str = SYNC_TYPE_MANUAL,
        timeout_s: float | None = None,
    ) -> CatalogSyncRun:
        """Reconcile one manifest file and return its terminal run record."""
        if sync_type not in SYNC_TYPES:
            raise ValueError(f"unsupported sync type: {sync_type}")
        ctx = _SyncContext(
            path=path,
            sync_type=sync_type,
            actor=actor or SyncActor(),
            started_at=self._clock(),
        )
        try:
            async with self._run_tokens.hold(path, wait_s=self._settings.catalog_lock_wait_s):
                await self._run_pipeline(ctx, timeout_s)
                return await self._record(ctx)
        except SyncInProgressError as exc:
            ctx.fail(ERROR_KIND_BUSY, str(exc))
            return await self._record(ctx)

    async def sync_all(
        self,
        actor: SyncActor | None = None,
        *,
        sync_type: str = SYNC_TYPE_MANUAL,
    ) -> SyncAllSummary:
        """Sync every manifest independently; one file never blocks another."""
        files = await self.scan()
        semaphore = asyncio.Semaphore(max(1, self._settings.catalog_sync_max_concurrency))

        async def _one(path: str) -> CatalogSyncRun | None:
            async with semaphore:
                try:
                    return await self.sync_file(path, actor, sync_type=sync_type)
                except DatabaseError:
                    logger.exception("catalog_sync_run_lost path=%s", path)
                    return None

        results = await asyncio.gather(*(_one(path) for path in files))
        summary = SyncAllSummary(status=RUN_STATUS_SUCCESS, files=files, runs=[])
        for result in results:
            if result is None:
                summary.failed += 1
                continue
            summary.runs.append(result)
            if result.status == RUN_STATUS_SUCCESS:
                summary.succeeded += 1
            else:
                summary.failed += 1
            summary.counts.projects_created += result.projects_created
            summary.counts.projects_updated += result.projects_updated
            summary.counts.services_created += result.services_created
            summary.counts.services_updated += result.services_updated
            summary.counts.services_orphaned += result.services_orphaned
        if summary.failed and summary.succeeded:
            summary.status = RUN_STATUS_PARTIAL
        elif summary.failed:
            summary.status = RUN_STATUS_FAILED
        logger.info(
            "catalog_sync_all_completed files=%s succeeded=%s failed=%s",
            len(files),
            summary.succeeded,
            summary.failed,
        )
        return summary

    async def _run_pipeline(self, ctx: _SyncContext, timeout_s: float | None) -> None:
        fetch_timeout = timeout_s if timeout_s is not None else self._settings.catalog_fetch_timeout_s
        stage_timeout = timeout_s if timeout_s is not None else self._settings.catalog_stage_timeout_s
        try:
            content = await self._fetch(ctx, fetch_timeout)
            if content is None:
                return
            document = await self._parse_and_validate(ctx, content, stage_timeout)
            if document is None:
                return
            resolved = await self._resolve(ctx, document)
            if resolved is None:
                return
            await self._apply(ctx, resolved)
        except Exception as exc:  # noqa: BLE001 - every invocation must end in a run record
            logger.exception("catalog_sync_internal_error path=%s stage=%s", ctx.path, ctx.stage)
            message = f"unexpected error during {ctx.stage}: {exc}"
            writing = ctx.stage in {STAGE_UPSERTING, STAGE_DETECTING_ORPHANS}
            if writing and self._settings.catalog_sync_atomic:
                # The session closed without a commit; nothing from this run survived.
                ctx.counts = SyncCounts()
                message += " (changes rolled back)"
            ctx.fail(ERROR_KIND_INTERNAL, message)
            if writing:
                await self._flag_failed_project(ctx)

    async def _fetch(self, ctx: _SyncContext, timeout_s: float) -> bytes | None:
        ctx.stage = STAGE_FETCHING
        try:
            self._source.require_usable()
        except CatalogSourceConfigError as exc:
            ctx.fail(ERROR_KIND_CONFIG, str(exc))
            return None
        # Best-available identity for the run record, even if the file never parses.
        try:
            async with self._session_factory() as session:
                existing = await projects_repo.get_by_catalog_path(session, ctx.path)
        except SQLAlchemyError as exc:
            logger.warning("catalog_sync_project_lookup_failed path=%s", ctx.path, exc_info=exc)
            ctx.fail(ERROR_KIND_PERSISTENCE, f"failed to read catalog store: {exc}")
            return None
        if existing is not None:
            ctx.project_id = existing.id
            ctx.project_name = existing.name
        try:
            return await asyncio.wait_for(self._fetcher.get_content(ctx.path), timeout=timeout_s)
        except asyncio.TimeoutError:
            ctx.fail(ERROR_KIND_TIMEOUT, f"fetching {ctx.path} timed out after {timeout_s:g}s")
        except ManifestFetchError as exc:
            ctx.fail(ERROR_KIND_FETCH, f"failed to fetch file: {exc}")
        return None

    async def _parse_and_validate(
        self, ctx: _SyncContext, content: bytes, timeout_s: float
    ) -> CatalogDocument | None:
        ctx.stage = STAGE_PARSING
        try:
            parsed: StageResult[CatalogDocument] = await asyncio.wait_for(
                asyncio.to_thread(parse_manifest, content), timeout=timeout_s
            )
        except asyncio.TimeoutError:
            ctx.fail(ERROR_KIND_TIMEOUT, f"parsing {ctx.path} timed out after {timeout_s:g}s")
            return None
        if isinstance(parsed, StageFailed):
            ctx.fail_with(parsed)
            return None
        document = parsed.value
        if not ctx.project_name and document.metadata.name:
            ctx.project_name = document.metadata.name

        ctx.stage = STAGE_VALIDATING
        try:
            errors = await asyncio.wait_for(
                asyncio.to_thread(validate_document, document), timeout=timeout_s
            )
        except asyncio.TimeoutError:
            ctx.fail(ERROR_KIND_TIMEOUT, f"validating {ctx.path} timed out after {timeout_s:g}s")
            return None
        if not errors:
            try:
                async with self._session_factory() as session:
                    errors = await validate_catalog_conflicts(
                        session,
                        document,
                        catalog_file_path=ctx.path,
                        enforce_global_service_names=self._settings.catalog_enforce_global_service_names,
                    )
            except SQLAlchemyError as exc:
                ctx.fail(ERROR_KIND_PERSISTENCE, f"failed to read catalog store: {exc}")
                return None
        if errors:
            ctx.fail(
                ERROR_KIND_VALIDATION,
                f"schema validation failed ({len(errors)} error{'s' if len(errors) != 1 else ''})",
                tuple(errors),
            )
            return None
        return document

    async def _resolve(self, ctx: _SyncContext, document: CatalogDocument) -> ResolvedDocument | None:
        ctx.stage = STAGE_RESOLVING
        try:
            async with self._session_factory() as session:
                resolved = await resolve_owners(
                    session, document, mode=self._settings.catalog_owner_reference
                )
        except SQLAlchemyError as exc:
            ctx.fail(ERROR_KIND_PERSISTENCE, f"failed to read team directory: {exc}")
            return None
        if isinstance(resolved, StageFailed):
            ctx.fail_with(resolved)
            return None
        assert isinstance(resolved, StageOk)
        return resolved.value

    async def _apply(self, ctx: _SyncContext, resolved: ResolvedDocument) -> None:
        atomic = self._settings.catalog_sync_atomic
        synced_at = self._clock()
        if ctx.project_id is not None:
            await self._mark_project(ctx.project_id, SYNC_STATUS_SYNCING, None)

        async with self._session_factory() as session:
            try:
                ctx.stage = STAGE_UPSERTING
                project, outcome = await upsert_project(
                    session, resolved, catalog_file_path=ctx.path, synced_at=synced_at
                )
                if not atomic:
                    await session.commit()
                ctx.project_id = project.id
                ctx.project_name = project.name
                ctx.counts.record_project(outcome)

                for resolved_service in resolved.services:
                    _, service_outcome = await upsert_service(
                        session, project, resolved_service, catalog_file_path=ctx.path
                    )
                    if not atomic:
                        await session.commit()
                    ctx.counts.record_service(service_outcome)

                ctx.stage = STAGE_DETECTING_ORPHANS
                orphaned = await detect_orphans(
                    session, project.id, resolved.service_names, detected_at=synced_at
                )
                await session.commit()
                ctx.counts.services_orphaned += len(orphaned)
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.warning(
                    "catalog_sync_persistence_failed path=%s stage=%s",
                    ctx.path,
                    ctx.stage,
                    exc_info=exc,
                )
                message = f"failed during {ctx.stage}: {exc.__class__.__name__}: {exc}"
                if atomic:
                    # Nothing from this run survived the rollback.
                    ctx.counts = SyncCounts()
                    message += " (changes rolled back)"
                ctx.fail(ERROR_KIND_PERSISTENCE, message)

        if ctx.failure is not None:
            await self._flag_failed_project(ctx)

    async def _flag_failed_project(self, ctx: _SyncContext) -> None:
        assert ctx.failure is not None
        if self._settings.catalog_sync_atomic:
            # A project created by this run was rolled back; only a prior row can be flagged.
            ctx.project_id = await self._existing_project_id(ctx.path)
        if ctx.project_id is not None:
            await self._mark_project(ctx.project_id, SYNC_STATUS_FAILED, ctx.failure.message)

    async def _existing_project_id(self, path: str) -> str | None:
        try:
            async with self._session_factory() as session:
                project = await projects_repo.get_by_catalog_path(session, path)
        except SQLAlchemyError as exc:
            logger.warning("catalog_sync_project_lookup_failed path=%s", path, exc_info=exc)
            return None
        return project.id if project else None

    async def _mark_project(self, project_id: str, status: str, error: str | None) -> None:
        try:
            async with self._session_factory() as session:
                await projects_repo.update_sync_status(
                    session, project_id, sync_status=status, sync_error=error
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.warning(
                "catalog_project_status_write_failed project_id=%s status=%s",
                project_id,
                status,
                exc_info=exc,
            )

    async def _record(self, ctx: _SyncContext) -> CatalogSyncRun:
        ctx.stage = STAGE_RECORDING
        completed_at = max(self._clock(), ctx.started_at)
        failure = ctx.failure
        run = CatalogSyncRun(
            sync_type=ctx.sync_type,
            project_id=ctx.project_id,
            project_name=ctx.project_name,
            catalog_file_path=ctx.path,
            status=RUN_STATUS_SUCCESS if failure is None else RUN_STATUS_FAILED,
            projects_created=ctx.counts.projects_created,
            projects_updated=ctx.counts.projects_updated,
            services_created=ctx.counts.services_created,
            services_updated=ctx.counts.services_updated,
            services_orphaned=ctx.counts.services_orphaned,
            error_kind=failure.kind if failure else None,
            error_message=failure.message if failure else None,
            validation_errors=[error.as_dict() for error in failure.errors] if failure else [],
            started_at=ctx.started_at,
            completed_at=completed_at,
            duration_ms=int((completed_at - ctx.started_at).total_seconds() * 1000),
            synced_by=ctx.actor.id,
            synced_by_name=ctx.actor.name,
        )
        try:
            async with self._session_factory() as session:
                sync_runs_repo.add_run(session, run)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("catalog_sync_run_write_failed path=%s", ctx.path, exc_info=exc)
            raise DatabaseError(f"failed to record sync run for {ctx.path}") from exc
        ctx.stage = STAGE_DONE

        record_sync_run(
            sync_type=run.sync_type,
            status=run.status,
            error_kind=run.error_kind,
            duration_ms=run.duration_ms,
        )
        if failure is None:
            logger.info(
                "catalog_sync_succeeded path=%s project=%s services_created=%s services_updated=%s "
                "services_orphaned=%s",
                ctx.path,
                run.project_name,
                run.services_created,
                run.services_updated,
                run.services_orphaned,
            )
        else:
            logger.warning(
                "catalog_sync_failed path=%s kind=%s error=%s",
                ctx.path,
                failure.kind,
                failure.message,
            )
        return run
