from __future__ import annotations

from portalight.providers.manifests.config import CatalogSourceConfig
from portalight.providers.manifests.github import GitHubManifestFetcher


def get_manifest_fetcher(source: CatalogSourceConfig) -> GitHubManifestFetcher:
    source.require_usable()
    return GitHubManifestFetcher(source)
