"""
Leaderboard: active ambassadors ordered by total_points.

Equal points are ordered by a configurable secondary key
(RANKING_TIE_BREAK): earliest enrollment by default.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.settings import RANKING_TIE_BREAKS, get_settings
from backend.app.models.ambassador import Ambassador
from backend.app.models.user import Profile


def _tie_break_columns(tie_break: str):
    if tie_break not in RANKING_TIE_BREAKS:
        raise ValueError(f"Unknown tie break: {tie_break}")
    if tie_break == "enrolled_at":
        return [Ambassador.created_at.asc(), Ambassador.id.asc()]
    if tie_break == "lifetime_sales":
        return [Ambassador.lifetime_sales.desc(), Ambassador.id.asc()]
    return [Ambassador.id.asc()]


def ranking_order(tie_break: Optional[str] = None):
    tie_break = tie_break or get_settings().RANKING_TIE_BREAK
    return [Ambassador.total_points.desc(), *_tie_break_columns(tie_break)]


async def get_ranking(
    session: AsyncSession,
    limit: Optional[int] = None,
    tie_break: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Top `limit` active ambassadors with their public profile fields."""
    if limit is None:
        limit = get_settings().RANKING_LIMIT
    q = (
        select(Ambassador, Profile.full_name, Profile.avatar_url)
        .outerjoin(Profile, Profile.user_id == Ambassador.user_id)
        .where(Ambassador.active == True)  # noqa: E712
        .order_by(*ranking_order(tie_break))
        .limit(limit)
    )
    rows = (await session.execute(q)).all()
    return [
        {
            "position": position,
            "ambassador_id": ambassador.id,
            "full_name": full_name,
            "avatar_url": avatar_url,
            "tier_id": ambassador.tier_id,
            "total_points": ambassador.total_points,
            "lifetime_sales": ambassador.lifetime_sales,
        }
        for position, (ambassador, full_name, avatar_url) in enumerate(rows, start=1)
    ]


async def get_position(session: AsyncSession, ambassador_id: int, tie_break: Optional[str] = None) -> Optional[int]:
    """1-based leaderboard position of an active ambassador, None if inactive or unknown."""
    ambassador = await session.get(Ambassador, ambassador_id)
    if not ambassador or not ambassador.active:
        return None
    ordered = (
        select(
            Ambassador.id,
            func.row_number().over(order_by=ranking_order(tie_break)).label("position"),
        )
        .where(Ambassador.active == True)  # noqa: E712
        .subquery()
    )
    q = select(ordered.c.position).where(ordered.c.id == ambassador_id)
    return (await session.execute(q)).scalar()
