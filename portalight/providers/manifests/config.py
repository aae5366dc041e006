from __future__ import annotations

from dataclasses import dataclass

from portalight.core.config import Settings, get_settings
from portalight.core.errors import CatalogSourceConfigError


MANIFEST_SUFFIXES = (".yaml", ".yml")


@dataclass(frozen=True)
class CatalogSourceConfig:
    # Injected into the fetcher and orchestrator; never read from process-wide state mid-run.
    repo_owner: str
    repo_name: str
    branch: str = "main"
    projects_path: str = "projects"
    token: str | None = None
    api_url: str = "https://api.github.com"
    webhook_secret: str | None = None
    enabled: bool = True

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CatalogSourceConfig":
        settings = settings or get_settings()
        return cls(
            repo_owner=settings.catalog_repo_owner,
            repo_name=settings.catalog_repo_name,
            branch=settings.catalog_branch,
            projects_path=settings.catalog_projects_path,
            token=settings.catalog_github_token,
            api_url=settings.catalog_github_api_url,
            webhook_secret=settings.catalog_webhook_secret,
            enabled=settings.catalog_enabled,
        )

    @property
    def source_id(self) -> str:
        # Stable key for scan status rows.
        return f"{self.repo_owner}/{self.repo_name}@{self.branch}:{self.normalized_prefix}"

    @property
    def normalized_prefix(self) -> str:
        prefix = self.projects_path.strip().strip("/")
        return f"{prefix}/" if prefix else ""

    def require_usable(self) -> None:
        if not self.enabled:
            raise CatalogSourceConfigError("catalog integration disabled")
        if not self.repo_owner or not self.repo_name:
            raise CatalogSourceConfigError("catalog repository owner and name are required")
        if not self.branch:
            raise CatalogSourceConfigError("catalog branch is required")


def is_manifest_path(path: str, prefix: str = "") -> bool:
    # Only YAML files under the projects path are manifests.
    if prefix and not path.startswith(prefix):
        return False
    return path.lower().endswith(MANIFEST_SUFFIXES)
