from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.domain.models import Project


async def get_by_catalog_path(session: AsyncSession, catalog_file_path: str) -> Project | None:
    result = await session.execute(
        select(Project).where(Project.catalog_file_path == catalog_file_path)
    )
    return result.scalar_one_or_none()


async def get_project(session: AsyncSession, project_id: str) -> Project | None:
    result = await session.execute(select(Project).where(Project.id == project_id))
    return result.scalar_one_or_none()


async def find_name_conflict(
    session: AsyncSession, *, name: str, catalog_file_path: str
) -> Project | None:
    # A project name may only be claimed by one manifest path (or one manual project).
    result = await session.execute(
        select(Project).where(
            Project.name == name,
            (Project.catalog_file_path.is_(None)) | (Project.catalog_file_path != catalog_file_path),
        )
    )
    return result.scalars().first()


async def list_projects(session: AsyncSession, *, auto_synced: bool | None = None) -> list[Project]:
    stmt = select(Project)
    if auto_synced is not None:
        stmt = stmt.where(Project.auto_synced.is_(auto_synced))
    result = await session.execute(stmt.order_by(Project.name))
    return list(result.scalars().all())


async def update_sync_status(
    session: AsyncSession,
    project_id: str,
    *,
    sync_status: str,
    sync_error: str | None = None,
) -> None:
    # Status bookkeeping only; catalog content is written by the upsert engine.
    project = await get_project(session, project_id)
    if project is None:
        return
    project.sync_status = sync_status
    project.sync_error = sync_error
