# backend/app/services/tiers.py
"""
Tier table, tier resolution and progress toward the next tier.

The pure helpers (`resolve_tier`, `calculate_tier_progress`) take any sequence
of objects exposing ``id`` and ``min_sales`` and do no I/O.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.logging import get_logger
from backend.app.core.metrics import tier_changes_total
from backend.app.models.ambassador import Ambassador, AmbassadorTier
from backend.app.services.realtime import EventBuffer, RealtimeEvents

logger = get_logger(__name__)


@dataclass
class TierProgress:
    current_tier: Optional[AmbassadorTier]
    next_tier: Optional[AmbassadorTier]
    sales_for_next: int
    progress: float
    is_max_tier: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_tier": tier_to_dict(self.current_tier) if self.current_tier else None,
            "next_tier": tier_to_dict(self.next_tier) if self.next_tier else None,
            "sales_for_next": self.sales_for_next,
            "progress": round(self.progress, 2),
            "is_max_tier": self.is_max_tier,
        }


def tier_to_dict(tier: AmbassadorTier) -> Dict[str, Any]:
    return {
        "id": tier.id,
        "name": tier.name,
        "min_sales": tier.min_sales,
        "commission_rate": float(tier.commission_rate),
        "recurring_rate": float(tier.recurring_rate or 0),
        "recurring_months": tier.recurring_months or 0,
        "color": tier.color,
        "icon": tier.icon,
        "benefits": list(tier.benefits or []),
        "display_order": tier.display_order,
    }


def sort_tiers(tiers: Sequence[AmbassadorTier]) -> List[AmbassadorTier]:
    return sorted(tiers, key=lambda t: t.min_sales)


def resolve_tier(lifetime_sales: int, tiers: Sequence[AmbassadorTier]) -> Optional[AmbassadorTier]:
    """Highest tier whose min_sales <= lifetime_sales (boundary inclusive).

    Sales below every threshold map to the lowest tier; an empty table gives None.
    """
    sorted_tiers = sort_tiers(tiers)
    if not sorted_tiers:
        return None
    current = sorted_tiers[0]
    for tier in sorted_tiers:
        if lifetime_sales >= tier.min_sales:
            current = tier
        else:
            break
    return current


def calculate_tier_progress(
    current_tier_id: Optional[str],
    lifetime_sales: int,
    tiers: Sequence[AmbassadorTier],
) -> TierProgress:
    """Progress from the current tier toward the next one.

    An unknown current_tier_id is treated as the lowest tier. sales_for_next
    is clamped at zero (stale tier) and progress at [0, 100].
    """
    sorted_tiers = sort_tiers(tiers)
    if not sorted_tiers:
        return TierProgress(None, None, 0, 100.0, True)

    index = next((i for i, t in enumerate(sorted_tiers) if t.id == current_tier_id), 0)
    current = sorted_tiers[index]

    if index == len(sorted_tiers) - 1:
        return TierProgress(current, None, 0, 100.0, True)

    next_tier = sorted_tiers[index + 1]
    sales_for_next = max(0, next_tier.min_sales - lifetime_sales)
    progress_range = next_tier.min_sales - current.min_sales
    current_progress = lifetime_sales - current.min_sales
    if progress_range <= 0:
        progress = 100.0
    else:
        progress = min(100.0, max(0.0, current_progress / progress_range * 100))

    return TierProgress(current, next_tier, sales_for_next, progress, False)


class TierService:
    def __init__(self, session: AsyncSession, events: Optional[EventBuffer] = None):
        self.session = session
        self.events = events if events is not None else EventBuffer()

    async def list_tiers(self, active_only: bool = True) -> List[AmbassadorTier]:
        q = select(AmbassadorTier).order_by(AmbassadorTier.min_sales)
        if active_only:
            q = q.where(AmbassadorTier.active == True)  # noqa: E712
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def lowest_tier(self) -> Optional[AmbassadorTier]:
        tiers = await self.list_tiers()
        return tiers[0] if tiers else None

    async def get_tier_for(self, ambassador: Ambassador, tiers: Optional[Sequence[AmbassadorTier]] = None) -> Optional[AmbassadorTier]:
        """Ambassador's stored tier; falls back to the tier their sales qualify for."""
        if tiers is None:
            tiers = await self.list_tiers(active_only=False)
        for tier in tiers:
            if tier.id == ambassador.tier_id:
                return tier
        logger.warning("Ambassador tier missing from tier table", ambassador_id=ambassador.id, tier_id=ambassador.tier_id)
        return resolve_tier(ambassador.lifetime_sales, [t for t in tiers if t.active])

    async def get_progress(self, ambassador: Ambassador) -> TierProgress:
        tiers = await self.list_tiers()
        return calculate_tier_progress(ambassador.tier_id, ambassador.lifetime_sales, tiers)

    async def recalculate(self, ambassador: Ambassador) -> bool:
        """Bring ambassador.tier_id in line with lifetime_sales. Returns True if it changed."""
        await self.session.flush()
        await self.session.refresh(ambassador, attribute_names=["lifetime_sales", "tier_id"])
        target = resolve_tier(ambassador.lifetime_sales, await self.list_tiers())
        if target is None or target.id == ambassador.tier_id:
            return False

        previous = ambassador.tier_id
        now = utcnow()
        await self.session.execute(
            update(Ambassador)
            .where(Ambassador.id == ambassador.id)
            .values(tier_id=target.id, tier_updated_at=now)
        )

        tier_changes_total.labels(tier=target.id).inc()
        self.events.add(ambassador.id, RealtimeEvents.TIER_CHANGED, {"from": previous, "to": target.id})
        logger.info("Ambassador tier changed", ambassador_id=ambassador.id, previous=previous, tier=target.id)
        return True

    async def recalculate_all(self) -> Dict[str, int]:
        """Fix tiers that drifted (e.g. after tier table edits). Used by the daily scheduler."""
        results = {"checked": 0, "updated": 0}
        rows = await self.session.execute(select(Ambassador).where(Ambassador.active == True))  # noqa: E712
        for ambassador in rows.scalars().all():
            results["checked"] += 1
            if await self.recalculate(ambassador):
                results["updated"] += 1
        return results
