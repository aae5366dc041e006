from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portalight.domain.models import CatalogSyncRun, Project, Service
from portalight.persistence.repos import projects as projects_repo
from portalight.persistence.repos import services as services_repo


async def load_project(
    session_factory: async_sessionmaker[AsyncSession], catalog_file_path: str
) -> Project | None:
    async with session_factory() as session:
        return await projects_repo.get_by_catalog_path(session, catalog_file_path)


async def load_services(
    session_factory: async_sessionmaker[AsyncSession], project_id: str
) -> dict[str, Service]:
    async with session_factory() as session:
        rows = await services_repo.list_by_project(session, project_id)
    return {row.name: row for row in rows}


async def row_counts(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, int]:
    async with session_factory() as session:
        counts = {}
        for label, model in (("projects", Project), ("services", Service), ("runs", CatalogSyncRun)):
            counts[label] = (await session.execute(select(func.count()).select_from(model))).scalar_one()
    return counts
