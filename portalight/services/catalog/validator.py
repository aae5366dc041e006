from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from portalight.core.config import CATALOG_API_VERSION, CATALOG_KIND
from portalight.domain.catalog import CatalogDocument
from portalight.persistence.repos import projects as projects_repo
from portalight.persistence.repos import services as services_repo
from portalight.services.catalog.results import FieldError


def _blank(value: str) -> bool:
    return not value or not value.strip()


def validate_document(document: CatalogDocument) -> list[FieldError]:
    """Collect every schema violation in one pass; rules never short-circuit."""
    errors: list[FieldError] = []

    if document.api_version != CATALOG_API_VERSION:
        errors.append(FieldError("apiVersion", f"must be {CATALOG_API_VERSION}"))
    if document.kind != CATALOG_KIND:
        errors.append(FieldError("kind", f"must be {CATALOG_KIND}"))

    metadata = document.metadata
    if _blank(metadata.name):
        errors.append(FieldError("metadata.name", "is required"))
    if _blank(metadata.title):
        errors.append(FieldError("metadata.title", "is required"))
    if _blank(metadata.owner):
        errors.append(FieldError("metadata.owner", "is required"))

    services = document.spec.services
    if not services:
        errors.append(FieldError("spec.services", "at least one service is required"))

    seen: set[str] = set()
    for index, service in enumerate(services):
        if _blank(service.name):
            errors.append(FieldError(f"spec.services[{index}].name", "is required"))
        else:
            # The first occurrence wins; later ones are reported, not dropped.
            if service.name in seen:
                errors.append(
                    FieldError(
                        f"spec.services[{index}].name",
                        f"duplicate service name '{service.name}' in this file",
                    )
                )
            seen.add(service.name)
        if _blank(service.title):
            errors.append(FieldError(f"spec.services[{index}].title", "is required"))

    return errors


async def validate_catalog_conflicts(
    session: AsyncSession,
    document: CatalogDocument,
    *,
    catalog_file_path: str,
    enforce_global_service_names: bool = False,
) -> list[FieldError]:
    # Catalog-wide policy checks; read-only, run before any row is written.
    errors: list[FieldError] = []
    conflict = await projects_repo.find_name_conflict(
        session, name=document.metadata.name, catalog_file_path=catalog_file_path
    )
    if conflict is not None:
        owner = conflict.catalog_file_path or "a manually created project"
        errors.append(
            FieldError("metadata.name", f"project name '{document.metadata.name}' is already used by {owner}")
        )

    if enforce_global_service_names:
        existing = await projects_repo.get_by_catalog_path(session, catalog_file_path)
        names = [service.name for service in document.spec.services]
        claimed = dict(
            await services_repo.find_name_conflicts(
                session, names=names, project_id=existing.id if existing else None
            )
        )
        for index, name in enumerate(names):
            if name in claimed:
                errors.append(
                    FieldError(
                        f"spec.services[{index}].name",
                        f"service name '{name}' is already used by project '{claimed[name]}'",
                    )
                )
    return errors
