from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Any
from urllib.parse import quote

import httpx

from portalight.core.config import get_settings
from portalight.core.errors import (
    ManifestAccessDeniedError,
    ManifestFetchError,
    ManifestNotFoundError,
    ManifestSourceUnavailableError,
)
from portalight.providers.manifests.config import CatalogSourceConfig
from portalight.services.telemetry import record_external_call


logger = logging.getLogger(__name__)

_INTEGRATION = "manifests.github"


class GitHubManifestFetcher:
    """Read-only access to manifest files in one GitHub repository branch.

    Listing walks the branch's git tree recursively (one call regardless of
    depth); content comes from the contents API, base64-decoded.
    """

    def __init__(
        self,
        source: CatalogSourceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self._source = source
        self._transport = transport
        self._timeout_s = timeout_s if timeout_s is not None else get_settings().catalog_fetch_timeout_s

    @property
    def source(self) -> CatalogSourceConfig:
        return self._source

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._source.token:
            headers["Authorization"] = f"Bearer {self._source.token}"
        return headers

    def _repo_url(self) -> str:
        owner = quote(self._source.repo_owner, safe="")
        repo = quote(self._source.repo_name, safe="")
        return f"{self._source.api_url.rstrip('/')}/repos/{owner}/{repo}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self._headers(),
            timeout=self._timeout_s,
            transport=self._transport,
        )

    async def _get_json(self, client: httpx.AsyncClient, url: str, **params: Any) -> Any:
        start = time.monotonic()
        try:
            response = await client.get(url, params=params or None)
        except httpx.TimeoutException as exc:
            self._record(start, success=False)
            raise ManifestSourceUnavailableError(f"repository request timed out: {url}") from exc
        except httpx.HTTPError as exc:
            self._record(start, success=False)
            raise ManifestSourceUnavailableError(f"repository unreachable: {exc}") from exc
        self._record(start, success=response.status_code < 500)
        if response.status_code in {401, 403}:
            raise ManifestAccessDeniedError(
                f"access denied by repository host (status {response.status_code})"
            )
        if response.status_code == 404:
            raise ManifestNotFoundError(f"not found: {url}")
        if response.status_code >= 400:
            raise ManifestFetchError(f"repository request failed (status {response.status_code})")
        try:
            return response.json()
        except ValueError as exc:
            raise ManifestFetchError("repository returned a non-JSON response") from exc

    @staticmethod
    def _record(start: float, *, success: bool) -> None:
        record_external_call(
            integration=_INTEGRATION,
            latency_ms=(time.monotonic() - start) * 1000.0,
            success=success,
        )

    async def _branch_sha(self, client: httpx.AsyncClient) -> str:
        branch = quote(self._source.branch, safe="/")
        try:
            ref = await self._get_json(client, f"{self._repo_url()}/git/ref/heads/{branch}")
        except ManifestNotFoundError:
            # A missing ref is either an unknown branch or a repository we cannot see.
            try:
                await self._get_json(client, self._repo_url())
            except (ManifestNotFoundError, ManifestAccessDeniedError) as exc:
                raise ManifestAccessDeniedError(
                    f"repository '{self._source.repo_owner}/{self._source.repo_name}' "
                    "not found or access denied (check token permissions)"
                ) from exc
            raise ManifestNotFoundError(
                f"branch '{self._source.branch}' not found in repository "
                f"'{self._source.repo_owner}/{self._source.repo_name}'"
            ) from None
        sha = (ref.get("object") or {}).get("sha") if isinstance(ref, dict) else None
        if not sha:
            raise ManifestFetchError(f"branch '{self._source.branch}' has no commit sha")
        return str(sha)

    async def list_files(self, prefix: str) -> list[str]:
        async with self._client() as client:
            sha = await self._branch_sha(client)
            tree = await self._get_json(client, f"{self._repo_url()}/git/trees/{sha}", recursive="1")
        if not isinstance(tree, dict):
            raise ManifestFetchError("repository returned an unexpected tree payload")
        if tree.get("truncated"):
            logger.warning(
                "manifest_tree_truncated repo=%s/%s branch=%s",
                self._source.repo_owner,
                self._source.repo_name,
                self._source.branch,
            )
        paths: list[str] = []
        for entry in tree.get("tree") or []:
            path = entry.get("path") or ""
            if entry.get("type") != "blob":
                continue
            if prefix and not path.startswith(prefix):
                continue
            paths.append(path)
        return sorted(paths)

    async def get_content(self, path: str) -> bytes:
        url = f"{self._repo_url()}/contents/{quote(path, safe='/')}"
        async with self._client() as client:
            payload = await self._get_json(client, url, ref=self._source.branch)
        if not isinstance(payload, dict) or payload.get("type") != "file":
            raise ManifestNotFoundError(f"file not found or is a directory: {path}")
        encoding = payload.get("encoding")
        content = payload.get("content") or ""
        if encoding != "base64":
            raise ManifestFetchError(f"unsupported content encoding '{encoding}' for {path}")
        try:
            return base64.b64decode(content)
        except (binascii.Error, ValueError) as exc:
            raise ManifestFetchError(f"failed to decode file content: {path}") from exc
