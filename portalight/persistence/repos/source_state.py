from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.domain.models import CatalogSourceState


async def get_state(session: AsyncSession, source_id: str) -> CatalogSourceState | None:
    result = await session.execute(
        select(CatalogSourceState).where(CatalogSourceState.id == source_id)
    )
    return result.scalar_one_or_none()


async def record_scan(
    session: AsyncSession,
    source_id: str,
    *,
    scanned_at: datetime,
    status: str,
    error: str | None = None,
    file_count: int | None = None,
) -> CatalogSourceState:
    state = await get_state(session, source_id)
    if state is None:
        state = CatalogSourceState(id=source_id)
        session.add(state)
    state.last_scan_at = scanned_at
    state.last_scan_status = status
    state.last_scan_error = error
    state.last_scan_file_count = file_count
    return state
