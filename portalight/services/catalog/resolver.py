from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from portalight.domain.catalog import CatalogDocument, CatalogService
from portalight.persistence.repos import teams as teams_repo
from portalight.services.catalog.results import (
    ERROR_KIND_RESOLUTION,
    FieldError,
    StageFailed,
    StageOk,
    StageResult,
)


OWNER_REFERENCE_NAME = "name"
OWNER_REFERENCE_ID = "id"
OWNER_REFERENCE_AUTO = "auto"
OWNER_REFERENCE_MODES = {OWNER_REFERENCE_NAME, OWNER_REFERENCE_ID, OWNER_REFERENCE_AUTO}

_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


class TeamDirectory(Protocol):
    async def find_by_name(self, name: str) -> str | None:
        ...

    async def find_by_id(self, team_id: str) -> str | None:
        ...


class SqlTeamDirectory:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_name(self, name: str) -> str | None:
        team = await teams_repo.find_by_name(self._session, name)
        return team.id if team else None

    async def find_by_id(self, team_id: str) -> str | None:
        team = await teams_repo.get_team(self._session, team_id)
        return team.id if team else None


@dataclass(frozen=True)
class ResolvedService:
    spec: CatalogService
    owner_team_id: str
    # Raw override from the manifest, None when inherited from the project.
    owner_ref: str | None


@dataclass(frozen=True)
class ResolvedDocument:
    document: CatalogDocument
    owner_team_id: str
    services: tuple[ResolvedService, ...]

    @property
    def service_names(self) -> set[str]:
        return {service.spec.name for service in self.services}


class OwnerResolver:
    """Strict owner lookup: unknown teams fail the file, nothing is created on demand."""

    def __init__(self, directory: TeamDirectory, *, mode: str = OWNER_REFERENCE_NAME) -> None:
        if mode not in OWNER_REFERENCE_MODES:
            raise ValueError(f"unsupported owner reference mode: {mode}")
        self._directory = directory
        self._mode = mode
        self._cache: dict[str, str | None] = {}

    async def lookup(self, reference: str) -> str | None:
        key = reference.strip().lower()
        if key in self._cache:
            return self._cache[key]
        if self._mode == OWNER_REFERENCE_ID or (
            self._mode == OWNER_REFERENCE_AUTO and _UUID_RE.match(reference.strip())
        ):
            team_id = await self._directory.find_by_id(reference.strip())
        else:
            team_id = await self._directory.find_by_name(reference.strip())
        self._cache[key] = team_id
        return team_id

    async def resolve(self, document: CatalogDocument) -> StageResult[ResolvedDocument]:
        errors: list[FieldError] = []
        project_owner = await self.lookup(document.metadata.owner)
        if project_owner is None:
            errors.append(
                FieldError("metadata.owner", f"owner team '{document.metadata.owner}' not found")
            )

        services: list[ResolvedService] = []
        for index, service in enumerate(document.spec.services):
            override = service.owner.strip()
            if not override:
                services.append(ResolvedService(service, project_owner or "", None))
                continue
            team_id = await self.lookup(override)
            if team_id is None:
                errors.append(
                    FieldError(
                        f"spec.services[{index}].owner",
                        f"owner team '{service.owner}' not found",
                    )
                )
                continue
            services.append(ResolvedService(service, team_id, service.owner))

        if errors:
            return StageFailed(ERROR_KIND_RESOLUTION, errors[0].message, tuple(errors))
        assert project_owner is not None
        return StageOk(ResolvedDocument(document, project_owner, tuple(services)))


async def resolve_owners(
    session: AsyncSession, document: CatalogDocument, *, mode: str = OWNER_REFERENCE_NAME
) -> StageResult[ResolvedDocument]:
    return await OwnerResolver(SqlTeamDirectory(session), mode=mode).resolve(document)
