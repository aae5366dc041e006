from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import hmac
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from portalight.core.errors import DatabaseError, WebhookSignatureError
from portalight.domain.models import RUN_STATUS_SUCCESS, SYNC_TYPE_WEBHOOK
from portalight.persistence.repos import projects as projects_repo
from portalight.providers.manifests.config import is_manifest_path
from portalight.services.catalog.orchestrator import CatalogSyncer, SyncActor


logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="
PUSH_EVENT = "push"
PING_EVENT = "ping"

WEBHOOK_PROCESSED = "processed"
WEBHOOK_IGNORED = "ignored"

WEBHOOK_ACTOR = SyncActor(id=None, name="github-webhook")


def build_signature(secret: str, payload: bytes) -> str:
    # GitHub X-Hub-Signature-256 format.
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str | None, payload: bytes, signature: str | None) -> None:
    if not secret:
        return
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        raise WebhookSignatureError("missing webhook signature")
    if not hmac.compare_digest(build_signature(secret, payload), signature.strip()):
        raise WebhookSignatureError("invalid webhook signature")


class PushCommit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    added: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


class PushRepository(BaseModel):
    model_config = ConfigDict(extra="ignore")

    full_name: str = ""


class PushEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ref: str = ""
    commits: list[PushCommit] = Field(default_factory=list)
    repository: PushRepository = Field(default_factory=PushRepository)


def parse_push_event(payload: bytes) -> PushEvent:
    try:
        return PushEvent.model_validate_json(payload)
    except ValidationError as exc:
        raise ValueError(f"invalid push payload: {exc.error_count()} error(s)") from exc


def changed_manifest_paths(event: PushEvent, prefix: str) -> tuple[list[str], list[str]]:
    """Return (changed, removed) manifest paths in first-seen order.

    A path removed and later re-added in the same push counts as changed.
    """
    changed: dict[str, None] = {}
    removed: dict[str, None] = {}
    for commit in event.commits:
        for path in [*commit.added, *commit.modified]:
            if is_manifest_path(path, prefix):
                removed.pop(path, None)
                changed[path] = None
        for path in commit.removed:
            if is_manifest_path(path, prefix):
                changed.pop(path, None)
                removed[path] = None
    return list(changed), list(removed)


@dataclass(frozen=True)
class WebhookFileResult:
    path: str
    status: str
    run_id: str | None = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"path": self.path, "status": self.status, "run_id": self.run_id, "error": self.error}


@dataclass
class WebhookOutcome:
    status: str
    reason: str | None = None
    results: list[WebhookFileResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "reason": self.reason,
            "results": [result.as_dict() for result in self.results],
            "skipped": list(self.skipped),
            "removed": list(self.removed),
        }


async def handle_push_webhook(
    syncer: CatalogSyncer,
    *,
    event_type: str,
    payload: bytes,
    signature: str | None,
    actor: SyncActor | None = None,
    create_projects: bool | None = None,
) -> WebhookOutcome:
    """Verify a repository push notification and sync the manifests it touched."""
    source = syncer.source
    if create_projects is None:
        create_projects = syncer.settings.catalog_webhook_create_projects
    verify_signature(source.webhook_secret, payload, signature)

    if event_type == PING_EVENT:
        return WebhookOutcome(status=WEBHOOK_IGNORED, reason="ping")
    if event_type != PUSH_EVENT:
        return WebhookOutcome(status=WEBHOOK_IGNORED, reason=f"unsupported event '{event_type}'")
    if not source.enabled:
        return WebhookOutcome(status=WEBHOOK_IGNORED, reason="catalog integration disabled")

    event = parse_push_event(payload)
    expected_repo = f"{source.repo_owner}/{source.repo_name}"
    if event.repository.full_name and event.repository.full_name.lower() != expected_repo.lower():
        logger.info(
            "catalog_webhook_ignored reason=repository repo=%s expected=%s",
            event.repository.full_name,
            expected_repo,
        )
        return WebhookOutcome(status=WEBHOOK_IGNORED, reason="repository not configured")
    if event.ref != f"refs/heads/{source.branch}":
        logger.info("catalog_webhook_ignored reason=branch ref=%s", event.ref)
        return WebhookOutcome(status=WEBHOOK_IGNORED, reason=f"push to {event.ref or 'unknown ref'}")

    changed, removed = changed_manifest_paths(event, source.normalized_prefix)
    outcome = WebhookOutcome(status=WEBHOOK_PROCESSED, removed=removed)
    for path in removed:
        # Deleted manifests leave their projects in place for an operator to retire.
        logger.info("catalog_webhook_manifest_removed path=%s", path)

    for path in changed:
        if not create_projects and not await _has_project(syncer, path):
            outcome.skipped.append(path)
            continue
        try:
            run = await syncer.sync_file(path, actor or WEBHOOK_ACTOR, sync_type=SYNC_TYPE_WEBHOOK)
        except DatabaseError as exc:
            outcome.results.append(WebhookFileResult(path=path, status="error", error=str(exc)))
            continue
        outcome.results.append(
            WebhookFileResult(
                path=path,
                status=run.status,
                run_id=run.id,
                error=run.error_message if run.status != RUN_STATUS_SUCCESS else None,
            )
        )
    logger.info(
        "catalog_webhook_processed ref=%s changed=%s removed=%s skipped=%s",
        event.ref,
        len(changed),
        len(removed),
        len(outcome.skipped),
    )
    return outcome


async def _has_project(syncer: CatalogSyncer, path: str) -> bool:
    async with syncer.session_factory() as session:
        return await projects_repo.get_by_catalog_path(session, path) is not None
