"""
Tests for points and achievements.

Tests cover:
- Unlock on sale, cascade through a points achievement
- Unknown requirement types are skipped, not fatal
- Each achievement unlocks once
- mark_notified is one-way and scoped to the owner
"""
import pytest
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import NotFoundError
from backend.app.models.ambassador import Ambassador
from backend.app.services.achievements import AchievementService, metric_value
from backend.app.services.realtime import EventBuffer, RealtimeEvents
from backend.app.services.referrals import ReferralService


def test_metric_value():
    amb = Ambassador(lifetime_sales=3, total_earnings=Decimal("12.50"), link_clicks=7, total_points=40)
    assert metric_value(amb, "sales") == 3
    assert metric_value(amb, "earnings") == 12.5
    assert metric_value(amb, "clicks") == 7
    assert metric_value(amb, "points") == 40
    assert metric_value(amb, "followers") is None


@pytest.mark.asyncio
async def test_first_sale_unlocks_achievement(test_session: AsyncSession, ambassador: Ambassador, achievements):
    events = EventBuffer()
    await ReferralService(test_session, events).record_sale("MARIA1", Decimal("100"), "Plano Anual")
    await test_session.commit()

    unlocked = await AchievementService(test_session).list_unlocked(ambassador.id)
    assert [ua.achievement.name for ua in unlocked] == ["Primeira venda"]
    assert unlocked[0].notified is False

    await test_session.refresh(ambassador)
    assert ambassador.total_points == 60  # 10 for the sale + 50 for the badge
    assert RealtimeEvents.ACHIEVEMENT_UNLOCKED in [e for _, e, _ in events]


@pytest.mark.asyncio
async def test_points_achievement_cascades(test_session: AsyncSession, make_ambassador, achievements):
    amb = await make_ambassador(7001, "CASC1", total_points=45)
    service = AchievementService(test_session)

    # sales badge (+50) pushes points to 95, not yet 100
    amb_sales = await make_ambassador(7002, "CASC2", total_points=45, lifetime_sales=1)
    first = await service.check_achievements(amb_sales)
    assert [a.name for a in first] == ["Primeira venda"]

    # 55 + 50 = 105 -> the points badge unlocks in the next round
    amb.lifetime_sales = 1
    amb.total_points = 55
    await test_session.flush()
    newly = await service.check_achievements(amb)
    await test_session.refresh(amb)

    assert [a.name for a in newly] == ["Primeira venda", "Cem pontos"]
    assert amb.total_points == 125


@pytest.mark.asyncio
async def test_unknown_requirement_type_is_skipped(test_session: AsyncSession, make_ambassador, achievements):
    amb = await make_ambassador(7003, "SKIP1", lifetime_sales=50, total_points=500)
    newly = await AchievementService(test_session).check_achievements(amb)
    assert "Misteriosa" not in [a.name for a in newly]


@pytest.mark.asyncio
async def test_achievement_unlocks_once(test_session: AsyncSession, make_ambassador, achievements):
    amb = await make_ambassador(7004, "ONCE1", lifetime_sales=1)
    service = AchievementService(test_session)
    assert len(await service.check_achievements(amb)) == 1
    assert await service.check_achievements(amb) == []
    assert len(await service.list_unlocked(amb.id)) == 1


@pytest.mark.asyncio
async def test_award_points_ledger(test_session: AsyncSession, ambassador: Ambassador):
    service = AchievementService(test_session)
    assert await service.award_points(ambassador.id, 0, "sale") is None

    await service.award_points(ambassador.id, 10, "sale", description="Venda", reference_id="1")
    await service.award_points(ambassador.id, 5, "recurring_sale")
    await test_session.refresh(ambassador)

    assert ambassador.total_points == 15
    history = await service.points_history(ambassador.id)
    assert sum(p.points for p in history) == 15


@pytest.mark.asyncio
async def test_mark_notified(test_session: AsyncSession, make_ambassador, achievements):
    amb = await make_ambassador(7005, "NOTI1", lifetime_sales=1)
    other = await make_ambassador(7006, "NOTI2")
    service = AchievementService(test_session)
    await service.check_achievements(amb)
    ua = (await service.list_unlocked(amb.id, only_unnotified=True))[0]

    with pytest.raises(NotFoundError):
        await service.mark_notified(ua.id, other.id)

    marked = await service.mark_notified(ua.id, amb.id)
    assert marked.notified is True
    # Idempotent: a second call leaves it notified
    assert (await service.mark_notified(ua.id, amb.id)).notified is True
    assert await service.list_unlocked(amb.id, only_unnotified=True) == []
