"""
Referral link clicks and their analytics.

Clicks are append-only and never deduplicated. Daily buckets cover the
trailing CLICK_WINDOW_DAYS calendar days (program timezone) ending today,
zero-filled. Source/medium breakdowns keep the top CLICK_TOP_BUCKETS.
"""
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import local_midnight_utc, local_today, to_local_date
from backend.app.core.constants import CLICK_TOP_BUCKETS, CLICK_WINDOW_DAYS, DIRECT_SOURCE, ORGANIC_MEDIUM
from backend.app.core.logging import get_logger
from backend.app.core.metrics import clicks_total
from backend.app.models.ambassador import Ambassador
from backend.app.models.click import AmbassadorClick
from backend.app.services.achievements import AchievementService
from backend.app.services.realtime import EventBuffer, RealtimeEvents
from backend.app.services.referrals import normalize_code

logger = get_logger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value[:128] or None


def daily_counts(timestamps: Iterable[datetime], today: date, days: int = CLICK_WINDOW_DAYS) -> List[Dict[str, Any]]:
    """Exactly `days` buckets, oldest first, ending at `today`."""
    start = today - timedelta(days=days - 1)
    counts: Counter = Counter()
    for ts in timestamps:
        day = to_local_date(ts)
        if start <= day <= today:
            counts[day] += 1
    return [
        {"date": (start + timedelta(days=i)).isoformat(), "clicks": counts[start + timedelta(days=i)]}
        for i in range(days)
    ]


def top_counts(values: Sequence[Optional[str]], fallback: str, limit: int = CLICK_TOP_BUCKETS) -> List[Dict[str, Any]]:
    """Count values (empty -> fallback); highest first, name breaks ties; remainder omitted."""
    counts = Counter((v or fallback) for v in values)
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [{"name": name, "count": count} for name, count in ordered[:limit]]


class ClickService:
    def __init__(self, session: AsyncSession, events: Optional[EventBuffer] = None):
        self.session = session
        self.events = events if events is not None else EventBuffer()

    async def record_click(
        self,
        referral_code: str,
        utm_source: Optional[str] = None,
        utm_medium: Optional[str] = None,
        utm_campaign: Optional[str] = None,
    ) -> Optional[AmbassadorClick]:
        """Log a click on an invite link. Unknown or inactive codes are ignored (None)."""
        code = normalize_code(referral_code)
        ambassador = None
        if code:
            q = select(Ambassador).where(Ambassador.referral_code == code)
            ambassador = (await self.session.execute(q)).scalar_one_or_none()
        if ambassador is None or not ambassador.active:
            logger.warning("Click ignored: unknown or inactive referral code", referral_code=referral_code)
            return None

        click = AmbassadorClick(
            ambassador_id=ambassador.id,
            referral_code=code,
            utm_source=_clean(utm_source),
            utm_medium=_clean(utm_medium),
            utm_campaign=_clean(utm_campaign),
        )
        self.session.add(click)
        await self.session.execute(
            update(Ambassador)
            .where(Ambassador.id == ambassador.id)
            .values(link_clicks=Ambassador.link_clicks + 1)
        )
        await self.session.flush()

        await AchievementService(self.session, self.events).check_achievements(ambassador)
        self.events.add(ambassador.id, RealtimeEvents.CLICK_CREATED, {"click_id": click.id})
        clicks_total.labels(utm_source=click.utm_source or DIRECT_SOURCE).inc()
        return click

    async def get_analytics(self, ambassador_id: int, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or local_today()
        window_start = local_midnight_utc(today - timedelta(days=CLICK_WINDOW_DAYS - 1))

        recent = await self.session.execute(
            select(AmbassadorClick.created_at).where(
                AmbassadorClick.ambassador_id == ambassador_id,
                AmbassadorClick.created_at >= window_start,
            )
        )
        sources = await self.session.execute(
            select(AmbassadorClick.utm_source, AmbassadorClick.utm_medium)
            .where(AmbassadorClick.ambassador_id == ambassador_id)
        )
        source_rows = sources.all()

        return {
            "daily": daily_counts(recent.scalars().all(), today),
            "by_source": top_counts([r.utm_source for r in source_rows], DIRECT_SOURCE),
            "by_medium": top_counts([r.utm_medium for r in source_rows], ORGANIC_MEDIUM),
            "total_clicks": len(source_rows),
        }

    async def count_since(self, ambassador_id: int, since: datetime) -> int:
        q = select(func.count(AmbassadorClick.id)).where(
            AmbassadorClick.ambassador_id == ambassador_id,
            AmbassadorClick.created_at >= since,
        )
        return (await self.session.execute(q)).scalar() or 0
