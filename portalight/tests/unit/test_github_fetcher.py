from __future__ import annotations

import base64

import httpx
import pytest

from portalight.core.errors import (
    ManifestAccessDeniedError,
    ManifestNotFoundError,
    ManifestSourceUnavailableError,
)
from portalight.providers.manifests.config import CatalogSourceConfig
from portalight.providers.manifests.github import GitHubManifestFetcher
from portalight.services import telemetry


API = "https://api.github.test"
REPO = f"{API}/repos/acme/catalog"


def _source(**overrides) -> CatalogSourceConfig:
    values = {
        "repo_owner": "acme",
        "repo_name": "catalog",
        "branch": "main",
        "projects_path": "projects",
        "token": "ghp_test",
        "api_url": API,
    }
    values.update(overrides)
    return CatalogSourceConfig(**values)


def _fetcher(handler, **overrides) -> GitHubManifestFetcher:
    return GitHubManifestFetcher(
        _source(**overrides), transport=httpx.MockTransport(handler), timeout_s=5.0
    )


@pytest.mark.asyncio
async def test_list_files_walks_branch_tree() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/repos/acme/catalog/git/ref/heads/main":
            return httpx.Response(200, json={"object": {"sha": "abc123"}})
        if request.url.path == "/repos/acme/catalog/git/trees/abc123":
            assert request.url.params["recursive"] == "1"
            return httpx.Response(
                200,
                json={
                    "truncated": False,
                    "tree": [
                        {"path": "projects", "type": "tree"},
                        {"path": "projects/search.yml", "type": "blob"},
                        {"path": "projects/payments.yaml", "type": "blob"},
                        {"path": "README.md", "type": "blob"},
                    ],
                },
            )
        return httpx.Response(404)

    files = await _fetcher(handler).list_files("projects/")

    assert files == ["projects/payments.yaml", "projects/search.yml"]
    assert seen[0].headers["Authorization"] == "Bearer ghp_test"
    assert telemetry.external_stats("manifests.github")["calls"] == 2


@pytest.mark.asyncio
async def test_get_content_decodes_base64() -> None:
    body = b"apiVersion: portalight.dev/v1alpha1\n"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/acme/catalog/contents/projects/payments.yaml"
        assert request.url.params["ref"] == "main"
        return httpx.Response(
            200,
            json={"type": "file", "encoding": "base64", "content": base64.b64encode(body).decode()},
        )

    assert await _fetcher(handler).get_content("projects/payments.yaml") == body


@pytest.mark.asyncio
async def test_missing_branch_is_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/repos/acme/catalog":
            return httpx.Response(200, json={"full_name": "acme/catalog"})
        return httpx.Response(404)

    with pytest.raises(ManifestNotFoundError, match="branch 'main' not found"):
        await _fetcher(handler).list_files("projects/")


@pytest.mark.asyncio
async def test_invisible_repository_is_access_denied() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    with pytest.raises(ManifestAccessDeniedError):
        await _fetcher(handler).list_files("projects/")


@pytest.mark.asyncio
async def test_rejected_token_is_access_denied() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Bad credentials"})

    with pytest.raises(ManifestAccessDeniedError):
        await _fetcher(handler).get_content("projects/payments.yaml")


@pytest.mark.asyncio
async def test_directory_path_is_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"type": "file", "path": "projects/a.yaml"}])

    with pytest.raises(ManifestNotFoundError):
        await _fetcher(handler).get_content("projects")


@pytest.mark.asyncio
async def test_transport_errors_are_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ManifestSourceUnavailableError):
        await _fetcher(handler).get_content("projects/payments.yaml")
    assert telemetry.external_stats("manifests.github")["errors"] == 1
