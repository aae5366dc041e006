from __future__ import annotations


class PortalightError(Exception):
    """Base error for Portalight."""


class CatalogSourceConfigError(PortalightError):
    """Missing or invalid manifest repository configuration."""


class ManifestFetchError(PortalightError):
    """Manifest repository request failure."""


class ManifestNotFoundError(ManifestFetchError):
    """Repository, branch or manifest path does not exist."""


class ManifestAccessDeniedError(ManifestFetchError):
    """Credentials were rejected or lack access to the repository."""


class ManifestSourceUnavailableError(ManifestFetchError):
    """Repository host unreachable or returned a server error."""


class ManifestParseError(PortalightError):
    """Manifest bytes are not a well-formed catalog document."""


class DatabaseError(PortalightError):
    """Catalog store failure."""


class SyncInProgressError(PortalightError):
    """Another sync already holds the run token for this manifest path."""


class WebhookSignatureError(PortalightError):
    """Webhook payload signature is missing or does not match."""
