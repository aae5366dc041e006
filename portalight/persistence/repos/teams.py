from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from portalight.domain.models import Team


async def find_by_name(session: AsyncSession, name: str) -> Team | None:
    # Compare lower() on both sides so "Payments", "payments" and "PAYMENTS" match one team.
    normalized = name.strip().lower()
    if not normalized:
        return None
    result = await session.execute(
        select(Team).where(func.lower(Team.name) == normalized).order_by(Team.created_at, Team.id)
    )
    return result.scalars().first()


async def get_team(session: AsyncSession, team_id: str) -> Team | None:
    normalized = team_id.strip()
    if not normalized:
        return None
    # Ids are UUID strings; accept upper-case references from hand-written manifests.
    result = await session.execute(
        select(Team).where(func.lower(Team.id) == normalized.lower())
    )
    return result.scalars().first()


async def list_teams(session: AsyncSession) -> list[Team]:
    result = await session.execute(select(Team).order_by(Team.name))
    return list(result.scalars().all())
