from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from portalight.domain.catalog import link_url, service_snapshot
from portalight.domain.models import SYNC_STATUS_SUCCESS, Project, Service
from portalight.persistence.repos import projects as projects_repo
from portalight.persistence.repos import services as services_repo
from portalight.services.catalog.resolver import ResolvedDocument, ResolvedService


logger = logging.getLogger(__name__)

UPSERT_CREATED = "created"
UPSERT_UPDATED = "updated"
UPSERT_UNCHANGED = "unchanged"


@dataclass
class SyncCounts:
    projects_created: int = 0
    projects_updated: int = 0
    services_created: int = 0
    services_updated: int = 0
    services_unchanged: int = 0
    services_orphaned: int = 0

    def record_project(self, outcome: str) -> None:
        if outcome == UPSERT_CREATED:
            self.projects_created += 1
        elif outcome == UPSERT_UPDATED:
            self.projects_updated += 1

    def record_service(self, outcome: str) -> None:
        if outcome == UPSERT_CREATED:
            self.services_created += 1
        elif outcome == UPSERT_UPDATED:
            self.services_updated += 1
        else:
            self.services_unchanged += 1


def _optional(value: str) -> str | None:
    # Absent manifest fields clear the column instead of keeping a stale value.
    stripped = value.strip()
    return stripped or None


def _apply(row: Any, desired: dict[str, Any]) -> bool:
    changed = False
    for key, value in desired.items():
        if getattr(row, key) != value:
            setattr(row, key, value)
            changed = True
    return changed


def _project_fields(resolved: ResolvedDocument) -> dict[str, Any]:
    metadata = resolved.document.metadata
    return {
        "name": metadata.name,
        "title": metadata.title.strip(),
        "description": _optional(metadata.description),
        "tags": list(metadata.tags),
        "links": [link.model_dump(mode="json") for link in metadata.links],
        "confluence_url": link_url(metadata.links, "confluence"),
        "owner_team_id": resolved.owner_team_id,
        "catalog_metadata": resolved.document.snapshot(),
        "auto_synced": True,
    }


def _service_fields(resolved: ResolvedService, *, catalog_file_path: str) -> dict[str, Any]:
    spec = resolved.spec
    return {
        "title": spec.title.strip(),
        "description": _optional(spec.description),
        "language": _optional(spec.language),
        "environment": _optional(spec.environment),
        "repository": _optional(spec.repository),
        "owner": resolved.owner_ref,
        "owner_team_id": resolved.owner_team_id,
        "tags": list(spec.tags),
        "links": [link.model_dump(mode="json") for link in spec.links],
        "dependencies": {
            "infrastructure": list(spec.dependencies.infrastructure),
            "services": list(spec.dependencies.services),
        },
        "grafana_url": link_url(spec.links, "grafana"),
        "confluence_url": link_url(spec.links, "confluence"),
        "catalog_source": catalog_file_path,
        "auto_synced": True,
        # A service declared again is no longer orphaned.
        "orphaned": False,
        "orphaned_at": None,
        "catalog_metadata": service_snapshot(spec),
    }


async def upsert_project(
    session: AsyncSession,
    resolved: ResolvedDocument,
    *,
    catalog_file_path: str,
    synced_at: datetime,
) -> tuple[Project, str]:
    desired = _project_fields(resolved)
    project = await projects_repo.get_by_catalog_path(session, catalog_file_path)
    if project is None:
        project = Project(catalog_file_path=catalog_file_path, **desired)
        outcome = UPSERT_CREATED
        session.add(project)
    else:
        outcome = UPSERT_UPDATED if _apply(project, desired) else UPSERT_UNCHANGED
    project.last_synced_at = synced_at
    project.sync_status = SYNC_STATUS_SUCCESS
    project.sync_error = None
    # Flush to assign the id and surface key conflicts before services are written.
    await session.flush()
    return project, outcome


async def upsert_service(
    session: AsyncSession,
    project: Project,
    resolved: ResolvedService,
    *,
    catalog_file_path: str,
) -> tuple[Service, str]:
    desired = _service_fields(resolved, catalog_file_path=catalog_file_path)
    name = resolved.spec.name
    service = await services_repo.get_by_natural_key(session, project.id, name)
    if service is None:
        service = Service(project_id=project.id, name=name, **desired)
        session.add(service)
        await session.flush()
        return service, UPSERT_CREATED
    if not service.auto_synced:
        logger.info(
            "catalog_service_adopted project=%s service=%s path=%s",
            project.name,
            name,
            catalog_file_path,
        )
    changed = _apply(service, desired)
    await session.flush()
    return service, UPSERT_UPDATED if changed else UPSERT_UNCHANGED
