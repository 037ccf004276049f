"""
Tests for tier resolution and progress toward the next tier.

Tests cover:
- resolve_tier boundaries (inclusive min_sales, below-lowest, empty table)
- calculate_tier_progress (bronze/silver/gold scenarios, stale data clamps, unknown tier)
- TierService.recalculate (upgrade, downgrade, event emission)
"""
import pytest
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.ambassador import Ambassador, AmbassadorTier
from backend.app.services.realtime import EventBuffer, RealtimeEvents
from backend.app.services.tiers import TierService, calculate_tier_progress, resolve_tier


def _table():
    # Deliberately unsorted: helpers must sort by min_sales themselves
    return [
        AmbassadorTier(id="gold", name="Ouro", min_sales=30, commission_rate=Decimal("12")),
        AmbassadorTier(id="bronze", name="Bronze", min_sales=0, commission_rate=Decimal("5")),
        AmbassadorTier(id="silver", name="Prata", min_sales=10, commission_rate=Decimal("8")),
    ]


# ============================================
# RESOLVE TIER
# ============================================

@pytest.mark.parametrize("sales,expected", [
    (0, "bronze"),
    (9, "bronze"),
    (10, "silver"),
    (29, "silver"),
    (30, "gold"),
    (500, "gold"),
])
def test_resolve_tier_boundaries_inclusive(sales, expected):
    assert resolve_tier(sales, _table()).id == expected


def test_resolve_tier_below_every_threshold_gets_lowest():
    table = [
        AmbassadorTier(id="starter", name="Starter", min_sales=5, commission_rate=Decimal("3")),
        AmbassadorTier(id="pro", name="Pro", min_sales=20, commission_rate=Decimal("6")),
    ]
    assert resolve_tier(2, table).id == "starter"


def test_resolve_tier_empty_table():
    assert resolve_tier(10, []) is None


# ============================================
# PROGRESS CALCULATOR
# ============================================

def test_progress_silver_at_threshold():
    """10 sales on bronze/silver/gold: silver, 0% toward gold, 20 sales to go."""
    progress = calculate_tier_progress("silver", 10, _table())
    assert progress.current_tier.id == "silver"
    assert progress.next_tier.id == "gold"
    assert progress.progress == 0.0
    assert progress.sales_for_next == 20
    assert progress.is_max_tier is False


def test_progress_gold_is_max():
    progress = calculate_tier_progress("gold", 30, _table())
    assert progress.is_max_tier is True
    assert progress.progress == 100.0
    assert progress.next_tier is None
    assert progress.sales_for_next == 0


def test_progress_midway():
    progress = calculate_tier_progress("bronze", 5, _table())
    assert progress.next_tier.id == "silver"
    assert progress.progress == pytest.approx(50.0)
    assert progress.sales_for_next == 5


def test_progress_stale_tier_clamps():
    """Stored tier lags behind sales: sales_for_next never negative, progress capped at 100."""
    progress = calculate_tier_progress("bronze", 15, _table())
    assert progress.current_tier.id == "bronze"
    assert progress.sales_for_next == 0
    assert progress.progress == 100.0


def test_progress_unknown_tier_treated_as_lowest():
    progress = calculate_tier_progress("platinum", 3, _table())
    assert progress.current_tier.id == "bronze"
    assert progress.next_tier.id == "silver"
    assert progress.progress == pytest.approx(30.0)


def test_progress_empty_table():
    progress = calculate_tier_progress("bronze", 3, [])
    assert progress.current_tier is None
    assert progress.is_max_tier is True
    assert progress.progress == 100.0


@pytest.mark.parametrize("sales", [0, 1, 9, 10, 11, 29, 30, 31, 1000])
@pytest.mark.parametrize("tier_id", ["bronze", "silver", "gold"])
def test_progress_always_in_range(tier_id, sales):
    progress = calculate_tier_progress(tier_id, sales, _table())
    assert 0.0 <= progress.progress <= 100.0
    assert progress.is_max_tier == (tier_id == "gold")
    assert progress.sales_for_next >= 0


def test_progress_to_dict():
    data = calculate_tier_progress("silver", 20, _table()).to_dict()
    assert data["current_tier"]["id"] == "silver"
    assert data["next_tier"]["id"] == "gold"
    assert data["progress"] == 50.0
    assert data["sales_for_next"] == 10


# ============================================
# TIER SERVICE
# ============================================

@pytest.mark.asyncio
async def test_recalculate_upgrades_tier(test_session: AsyncSession, make_ambassador):
    amb = await make_ambassador(2001, "UP10", tier_id="bronze", lifetime_sales=10)
    events = EventBuffer()

    changed = await TierService(test_session, events).recalculate(amb)
    await test_session.commit()

    assert changed is True
    await test_session.refresh(amb)
    assert amb.tier_id == "silver"
    assert amb.tier_updated_at is not None
    assert [(aid, e) for aid, e, _ in events] == [(amb.id, RealtimeEvents.TIER_CHANGED)]


@pytest.mark.asyncio
async def test_recalculate_downgrades_tier(test_session: AsyncSession, make_ambassador):
    amb = await make_ambassador(2002, "DOWN", tier_id="gold", lifetime_sales=12)
    assert await TierService(test_session).recalculate(amb) is True
    await test_session.refresh(amb)
    assert amb.tier_id == "silver"


@pytest.mark.asyncio
async def test_recalculate_noop_when_consistent(test_session: AsyncSession, make_ambassador):
    amb = await make_ambassador(2003, "SAME", tier_id="silver", lifetime_sales=15)
    events = EventBuffer()
    assert await TierService(test_session, events).recalculate(amb) is False
    assert len(events) == 0


@pytest.mark.asyncio
async def test_recalculate_all_counts(test_session: AsyncSession, make_ambassador):
    await make_ambassador(2004, "AAA1", tier_id="bronze", lifetime_sales=31)
    await make_ambassador(2005, "BBB1", tier_id="bronze", lifetime_sales=1)
    await make_ambassador(2006, "CCC1", tier_id="bronze", lifetime_sales=40, active=False)

    result = await TierService(test_session).recalculate_all()
    assert result == {"checked": 2, "updated": 1}


@pytest.mark.asyncio
async def test_get_tier_for_falls_back_when_tier_missing(test_session: AsyncSession, make_ambassador):
    amb = await make_ambassador(2007, "LOST", tier_id="silver", lifetime_sales=12)
    service = TierService(test_session)
    tiers = [t for t in await service.list_tiers() if t.id != "silver"]

    tier = await service.get_tier_for(amb, tiers)
    assert tier.id == "bronze"


@pytest.mark.asyncio
async def test_get_progress_service(test_session: AsyncSession, silver_ambassador: Ambassador):
    progress = await TierService(test_session).get_progress(silver_ambassador)
    assert progress.current_tier.id == "silver"
    assert progress.sales_for_next == 20
