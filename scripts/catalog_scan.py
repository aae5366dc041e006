from __future__ import annotations

import argparse
import asyncio

from portalight.core.logging import configure_logging
from portalight.providers.manifests.config import CatalogSourceConfig
from portalight.providers.manifests.factory import get_manifest_fetcher
from portalight.services.catalog.orchestrator import CatalogSyncer


async def _scan() -> None:
    # List manifests the next sync would pick up.
    source = CatalogSourceConfig.from_settings()
    syncer = CatalogSyncer(source, get_manifest_fetcher(source))
    paths = await syncer.scan()
    print(f"source={source.source_id}")
    for path in paths:
        print(path)
    print(f"files={len(paths)}")


def main() -> None:
    parser = argparse.ArgumentParser(description="List catalog manifests in the configured repository")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()
    configure_logging(args.log_level)
    asyncio.run(_scan())


if __name__ == "__main__":
    main()
