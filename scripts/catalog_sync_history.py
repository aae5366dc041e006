from __future__ import annotations

import argparse
import asyncio

from portalight.persistence.db import SessionLocal
from portalight.persistence.repos import sync_runs as sync_runs_repo


async def _history(*, project_id: str | None, path: str | None, status: str | None, limit: int) -> None:
    async with SessionLocal() as session:
        runs = await sync_runs_repo.list_runs(
            session,
            project_id=project_id,
            catalog_file_path=path,
            status=status,
            limit=limit,
        )
    for run in runs:
        print(
            f"{run.started_at.isoformat()} {run.status:<8} {run.sync_type:<9} "
            f"{run.catalog_file_path} project={run.project_name or '-'} "
            f"created={run.services_created} updated={run.services_updated} "
            f"orphaned={run.services_orphaned} kind={run.error_kind or '-'}"
        )
        if run.error_message:
            print(f"    error={run.error_message}")
        for error in run.validation_errors or []:
            print(f"    {error.get('field')}: {error.get('message')}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Show recent catalog sync runs")
    parser.add_argument("--project-id", default=None)
    parser.add_argument("--path", default=None)
    parser.add_argument("--status", default=None, choices=["success", "partial", "failed"])
    parser.add_argument("--limit", type=int, default=20)
    args = parser.parse_args()
    asyncio.run(
        _history(project_id=args.project_id, path=args.path, status=args.status, limit=args.limit)
    )


if __name__ == "__main__":
    main()
