from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.domain.models import Project, Service


async def get_by_natural_key(session: AsyncSession, project_id: str, name: str) -> Service | None:
    result = await session.execute(
        select(Service).where(Service.project_id == project_id, Service.name == name)
    )
    return result.scalar_one_or_none()


async def list_by_project(
    session: AsyncSession, project_id: str, *, orphaned: bool | None = None
) -> list[Service]:
    stmt = select(Service).where(Service.project_id == project_id)
    if orphaned is not None:
        stmt = stmt.where(Service.orphaned.is_(orphaned))
    result = await session.execute(stmt.order_by(Service.name, Service.id))
    return list(result.scalars().all())


async def list_orphaned(session: AsyncSession) -> list[Service]:
    result = await session.execute(
        select(Service).where(Service.orphaned.is_(True)).order_by(Service.orphaned_at, Service.name)
    )
    return list(result.scalars().all())


async def find_name_conflicts(
    session: AsyncSession, *, names: list[str], project_id: str | None
) -> list[tuple[str, str]]:
    # Return (service name, owning project name) pairs claimed by other projects.
    if not names:
        return []
    stmt = (
        select(Service.name, Project.name)
        .join(Project, Project.id == Service.project_id)
        .where(Service.name.in_(names))
    )
    if project_id is not None:
        stmt = stmt.where(Service.project_id != project_id)
    result = await session.execute(stmt.order_by(Service.name))
    return [(row[0], row[1]) for row in result.all()]


async def mark_orphaned(
    session: AsyncSession,
    project_id: str,
    *,
    declared_names: set[str],
    orphaned_at: datetime,
) -> list[Service]:
    # Set-difference flagging: auto-synced rows missing from the manifest, never deleted.
    result = await session.execute(
        select(Service).where(
            Service.project_id == project_id,
            Service.auto_synced.is_(True),
            Service.orphaned.is_(False),
        )
    )
    newly_orphaned: list[Service] = []
    for service in result.scalars().all():
        if service.name in declared_names:
            continue
        service.orphaned = True
        service.orphaned_at = orphaned_at
        newly_orphaned.append(service)
    return newly_orphaned
