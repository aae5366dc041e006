from __future__ import annotations

import pytest

from portalight.domain.catalog import CatalogDocument
from portalight.services.catalog.resolver import (
    OWNER_REFERENCE_AUTO,
    OWNER_REFERENCE_ID,
    OwnerResolver,
)
from portalight.services.catalog.results import ERROR_KIND_RESOLUTION, StageFailed, StageOk
from portalight.tests.utils.manifests import manifest, service


PAYMENTS_ID = "7d9f2c1e-3b4a-4c5d-8e6f-1a2b3c4d5e6f"
PLATFORM_ID = "0a1b2c3d-4e5f-4a6b-8c7d-9e0f1a2b3c4d"


class FakeTeamDirectory:
    def __init__(self) -> None:
        self._by_name = {"payments-team": PAYMENTS_ID, "platform-team": PLATFORM_ID}
        self.calls: list[str] = []

    async def find_by_name(self, name: str) -> str | None:
        self.calls.append(name)
        return self._by_name.get(name.lower())

    async def find_by_id(self, team_id: str) -> str | None:
        self.calls.append(team_id)
        return team_id.lower() if team_id.lower() in self._by_name.values() else None


def _document(**kwargs) -> CatalogDocument:
    return CatalogDocument.model_validate(manifest(**kwargs))


@pytest.mark.asyncio
async def test_services_inherit_project_owner() -> None:
    resolver = OwnerResolver(FakeTeamDirectory())

    result = await resolver.resolve(
        _document(
            owner="Payments-Team",
            services=[service("api"), service("infra", owner="PLATFORM-TEAM")],
        )
    )

    assert isinstance(result, StageOk)
    api, infra = result.value.services
    assert result.value.owner_team_id == PAYMENTS_ID
    assert (api.owner_team_id, api.owner_ref) == (PAYMENTS_ID, None)
    assert (infra.owner_team_id, infra.owner_ref) == (PLATFORM_ID, "PLATFORM-TEAM")
    assert result.value.service_names == {"api", "infra"}


@pytest.mark.asyncio
async def test_unknown_owners_are_all_reported() -> None:
    resolver = OwnerResolver(FakeTeamDirectory())

    result = await resolver.resolve(
        _document(owner="ghost-team", services=[service("api"), service("worker", owner="nobody")])
    )

    assert isinstance(result, StageFailed)
    assert result.kind == ERROR_KIND_RESOLUTION
    assert result.message == "owner team 'ghost-team' not found"
    assert [error.field for error in result.errors] == ["metadata.owner", "spec.services[1].owner"]


@pytest.mark.asyncio
async def test_lookups_are_cached_per_reference() -> None:
    directory = FakeTeamDirectory()
    resolver = OwnerResolver(directory)

    await resolver.resolve(
        _document(services=[service("a", owner="payments-team"), service("b", owner="Payments-Team")])
    )

    assert directory.calls == ["payments-team"]


@pytest.mark.asyncio
async def test_id_mode_resolves_team_ids() -> None:
    resolver = OwnerResolver(FakeTeamDirectory(), mode=OWNER_REFERENCE_ID)

    by_id = await resolver.resolve(_document(owner=PAYMENTS_ID.upper()))
    by_name = await OwnerResolver(FakeTeamDirectory(), mode=OWNER_REFERENCE_ID).resolve(_document())

    assert isinstance(by_id, StageOk)
    assert by_id.value.owner_team_id == PAYMENTS_ID
    assert isinstance(by_name, StageFailed)


@pytest.mark.asyncio
async def test_auto_mode_accepts_names_and_ids() -> None:
    resolver = OwnerResolver(FakeTeamDirectory(), mode=OWNER_REFERENCE_AUTO)

    result = await resolver.resolve(
        _document(owner="payments-team", services=[service("infra", owner=PLATFORM_ID)])
    )

    assert isinstance(result, StageOk)
    assert result.value.services[0].owner_team_id == PLATFORM_ID


def test_unsupported_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        OwnerResolver(FakeTeamDirectory(), mode="email")
