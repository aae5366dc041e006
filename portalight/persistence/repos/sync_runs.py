from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.domain.models import CatalogSyncRun


def add_run(session: AsyncSession, run: CatalogSyncRun) -> CatalogSyncRun:
    # Append-only: runs are written once in their terminal state and never updated.
    session.add(run)
    return run


async def get_run(session: AsyncSession, run_id: str) -> CatalogSyncRun | None:
    result = await session.execute(select(CatalogSyncRun).where(CatalogSyncRun.id == run_id))
    return result.scalar_one_or_none()


async def list_runs(
    session: AsyncSession,
    *,
    project_id: str | None = None,
    catalog_file_path: str | None = None,
    status: str | None = None,
    limit: int = 50,
) -> list[CatalogSyncRun]:
    stmt = select(CatalogSyncRun)
    if project_id:
        stmt = stmt.where(CatalogSyncRun.project_id == project_id)
    if catalog_file_path:
        stmt = stmt.where(CatalogSyncRun.catalog_file_path == catalog_file_path)
    if status:
        stmt = stmt.where(CatalogSyncRun.status == status)
    stmt = stmt.order_by(CatalogSyncRun.started_at.desc(), CatalogSyncRun.id.desc()).limit(max(1, limit))
    result = await session.execute(stmt)
    return list(result.scalars().all())
