from __future__ import annotations

import argparse
import asyncio
import json
import sys

from portalight.core.logging import configure_logging
from portalight.domain.models import RUN_STATUS_SUCCESS, SYNC_TYPE_MANUAL, SYNC_TYPES
from portalight.providers.manifests.config import CatalogSourceConfig
from portalight.providers.manifests.factory import get_manifest_fetcher
from portalight.services.catalog.orchestrator import CatalogSyncer, SyncActor, run_as_dict


async def _sync(path: str | None, *, actor: SyncActor, sync_type: str) -> int:
    source = CatalogSourceConfig.from_settings()
    syncer = CatalogSyncer(source, get_manifest_fetcher(source))
    if path:
        run = await syncer.sync_file(path, actor, sync_type=sync_type)
        print(json.dumps(run_as_dict(run), indent=2))
        return 0 if run.status == RUN_STATUS_SUCCESS else 1
    summary = await syncer.sync_all(actor, sync_type=sync_type)
    print(json.dumps(summary.as_dict(), indent=2))
    return 0 if summary.status == RUN_STATUS_SUCCESS else 1


def main() -> None:
    # Cron jobs pass --sync-type scheduled; operators use the manual default.
    parser = argparse.ArgumentParser(description="Sync catalog manifests into the catalog store")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--path", default=None, help="manifest path inside the repository")
    target.add_argument("--all", action="store_true", help="sync every manifest under the projects path")
    parser.add_argument("--sync-type", default=SYNC_TYPE_MANUAL, choices=list(SYNC_TYPES))
    parser.add_argument("--actor-id", default=None)
    parser.add_argument("--actor-name", default="cli")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()
    configure_logging(args.log_level)
    actor = SyncActor(id=args.actor_id, name=args.actor_name)
    sys.exit(asyncio.run(_sync(None if args.all else args.path, actor=actor, sync_type=args.sync_type)))


if __name__ == "__main__":
    main()
