from __future__ import annotations

from typing import Any, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from portalight.core.config import Settings
from portalight.domain.models import Base, Team
from portalight.persistence.db import build_engine, build_sessionmaker
from portalight.providers.manifests.config import CatalogSourceConfig
from portalight.providers.manifests.fake import FakeManifestFetcher
from portalight.services import telemetry
from portalight.services.catalog.locks import LocalRunTokens, reset_run_tokens
from portalight.services.catalog.orchestrator import CatalogSyncer


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    # Counters and run tokens are process-wide; start each test clean.
    telemetry.reset()
    reset_run_tokens()
    yield
    telemetry.reset()
    reset_run_tokens()


@pytest.fixture
async def catalog_engine(tmp_path) -> AsyncEngine:
    # File-backed sqlite so several sessions see each other's commits.
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(catalog_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(catalog_engine)


@pytest.fixture
async def teams(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, str]:
    async with session_factory() as session:
        rows = [Team(name="payments-team"), Team(name="Platform-Team"), Team(name="search-team")]
        session.add_all(rows)
        await session.commit()
        return {row.name: row.id for row in rows}


def build_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "database_url": "sqlite+aiosqlite://",
        "catalog_repo_owner": "acme",
        "catalog_repo_name": "catalog",
        "catalog_branch": "main",
        "catalog_projects_path": "projects",
        "catalog_webhook_secret": None,
        "catalog_lock_wait_s": 1.0,
        "catalog_fetch_timeout_s": 5.0,
        "catalog_stage_timeout_s": 5.0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def make_syncer(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., tuple[CatalogSyncer, FakeManifestFetcher]]:
    def _make(
        files: dict[str, str | bytes] | None = None,
        *,
        fetcher: FakeManifestFetcher | None = None,
        run_tokens: LocalRunTokens | None = None,
        **overrides: Any,
    ) -> tuple[CatalogSyncer, FakeManifestFetcher]:
        settings = build_settings(**overrides)
        fetcher = fetcher or FakeManifestFetcher(files)
        syncer = CatalogSyncer(
            CatalogSourceConfig.from_settings(settings),
            fetcher,
            session_factory=session_factory,
            settings=settings,
            run_tokens=run_tokens or LocalRunTokens(),
        )
        return syncer, fetcher

    return _make
