from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from portalight.domain.models import Service
from portalight.persistence.repos import services as services_repo


logger = logging.getLogger(__name__)


async def detect_orphans(
    session: AsyncSession,
    project_id: str,
    declared_names: set[str],
    *,
    detected_at: datetime,
) -> list[Service]:
    """Flag auto-synced services of a project that the manifest no longer declares.

    Rows already orphaned keep their original ``orphaned_at``; manually
    created rows are never touched. Nothing is deleted here: removing an
    orphan is an explicit operator action outside the sync pipeline.
    """
    orphaned = await services_repo.mark_orphaned(
        session,
        project_id,
        declared_names=declared_names,
        orphaned_at=detected_at,
    )
    for service in orphaned:
        logger.info(
            "catalog_service_orphaned project_id=%s service=%s source=%s",
            project_id,
            service.name,
            service.catalog_source,
        )
    if orphaned:
        await session.flush()
    return orphaned


async def list_orphans(session: AsyncSession, project_id: str | None = None) -> list[Service]:
    # Review queue for leads/admins deciding which orphans to remove.
    if project_id is None:
        return await services_repo.list_orphaned(session)
    return await services_repo.list_by_project(session, project_id, orphaned=True)
