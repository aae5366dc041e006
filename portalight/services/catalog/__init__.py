from portalight.services.catalog.orchestrator import (
    CatalogSyncer,
    SyncActor,
    SyncAllSummary,
    run_as_dict,
)
from portalight.services.catalog.orphans import detect_orphans, list_orphans
from portalight.services.catalog.parser import load_manifest, parse_manifest
from portalight.services.catalog.validator import validate_catalog_conflicts, validate_document
from portalight.services.catalog.webhook import handle_push_webhook, verify_signature

__all__ = [
    "CatalogSyncer",
    "SyncActor",
    "SyncAllSummary",
    "detect_orphans",
    "handle_push_webhook",
    "list_orphans",
    "load_manifest",
    "parse_manifest",
    "run_as_dict",
    "validate_catalog_conflicts",
    "validate_document",
    "verify_signature",
]
