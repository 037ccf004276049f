"""
Tests for referral link clicks and click analytics.

Tests cover:
- daily_counts: exactly 30 zero-filled buckets in the program timezone
- top_counts: fallback names, ordering, top-7 cut
- ClickService.record_click / get_analytics / count_since
"""
import pytest
from datetime import date, datetime
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.ambassador import Ambassador
from backend.app.models.click import AmbassadorClick
from backend.app.services.clicks import ClickService, daily_counts, top_counts
from backend.app.services.realtime import EventBuffer, RealtimeEvents


TODAY = date(2026, 3, 10)


def test_daily_counts_always_thirty_buckets():
    buckets = daily_counts([], TODAY)
    assert len(buckets) == 30
    assert buckets[0]["date"] == "2026-02-09"
    assert buckets[-1]["date"] == "2026-03-10"
    assert all(b["clicks"] == 0 for b in buckets)


def test_daily_counts_uses_local_calendar_day():
    timestamps = [
        datetime(2026, 3, 10, 14, 0),   # 11:00 local, today
        datetime(2026, 3, 10, 2, 0),    # 23:00 local on the 9th
        datetime(2026, 3, 9, 12, 0),
        datetime(2026, 2, 9, 3, 0),     # first bucket, local midnight
        datetime(2026, 2, 9, 2, 59),    # before the window
    ]
    buckets = {b["date"]: b["clicks"] for b in daily_counts(timestamps, TODAY)}
    assert buckets["2026-03-10"] == 1
    assert buckets["2026-03-09"] == 2
    assert buckets["2026-02-09"] == 1
    assert sum(buckets.values()) == 4


def test_top_counts_fallback_and_order():
    values = ["instagram", None, "", "whatsapp", "instagram", "whatsapp", "email"]
    result = top_counts(values, "direct")
    assert result == [
        {"name": "direct", "count": 2},
        {"name": "instagram", "count": 2},
        {"name": "whatsapp", "count": 2},
        {"name": "email", "count": 1},
    ]


def test_top_counts_keeps_seven():
    values = [f"source{i}" for i in range(10) for _ in range(i + 1)]
    result = top_counts(values, "direct")
    assert len(result) == 7
    assert result[0] == {"name": "source9", "count": 10}
    assert result[-1] == {"name": "source3", "count": 4}


@pytest.mark.asyncio
async def test_record_click(test_session: AsyncSession, ambassador: Ambassador):
    events = EventBuffer()
    click = await ClickService(test_session, events).record_click(
        " maria1", utm_source=" instagram ", utm_medium="", utm_campaign="x" * 200,
    )
    await test_session.commit()

    assert click is not None
    assert click.ambassador_id == ambassador.id
    assert click.referral_code == "MARIA1"
    assert click.utm_source == "instagram"
    assert click.utm_medium is None
    assert len(click.utm_campaign) == 128

    await test_session.refresh(ambassador)
    assert ambassador.link_clicks == 1
    assert [e for _, e, _ in events] == [RealtimeEvents.CLICK_CREATED]


@pytest.mark.asyncio
async def test_record_click_unknown_or_inactive_code(test_session: AsyncSession, make_ambassador):
    await make_ambassador(6001, "GONE1", active=False)
    service = ClickService(test_session)
    assert await service.record_click("GONE1") is None
    assert await service.record_click("NOBODY") is None
    assert await service.record_click("") is None


@pytest.mark.asyncio
async def test_record_click_unlocks_click_achievement(test_session: AsyncSession, ambassador: Ambassador, achievements):
    events = EventBuffer()
    await ClickService(test_session, events).record_click("MARIA1")
    await test_session.refresh(ambassador)

    assert ambassador.total_points == 5
    assert RealtimeEvents.ACHIEVEMENT_UNLOCKED in [e for _, e, _ in events]


@pytest.mark.asyncio
async def test_get_analytics(test_session: AsyncSession, ambassador: Ambassador):
    rows = [
        (datetime(2026, 3, 10, 14, 0), "instagram", "social"),
        (datetime(2026, 3, 9, 14, 0), "instagram", "social"),
        (datetime(2026, 3, 9, 15, 0), None, None),
        (datetime(2026, 1, 5, 12, 0), "whatsapp", "chat"),  # outside the daily window
    ]
    for created_at, source, medium in rows:
        test_session.add(AmbassadorClick(
            ambassador_id=ambassador.id, referral_code="MARIA1",
            utm_source=source, utm_medium=medium, created_at=created_at,
        ))
    await test_session.commit()

    analytics = await ClickService(test_session).get_analytics(ambassador.id, today=TODAY)

    assert len(analytics["daily"]) == 30
    assert sum(b["clicks"] for b in analytics["daily"]) == 3
    assert analytics["daily"][-1] == {"date": "2026-03-10", "clicks": 1}
    assert analytics["by_source"][0] == {"name": "instagram", "count": 2}
    assert {"name": "direct", "count": 1} in analytics["by_source"]
    assert {"name": "organic", "count": 1} in analytics["by_medium"]
    assert analytics["total_clicks"] == 4


@pytest.mark.asyncio
async def test_count_since(test_session: AsyncSession, ambassador: Ambassador):
    for created_at in (datetime(2026, 2, 20), datetime(2026, 3, 2), datetime(2026, 3, 5)):
        test_session.add(AmbassadorClick(ambassador_id=ambassador.id, referral_code="MARIA1", created_at=created_at))
    await test_session.commit()

    assert await ClickService(test_session).count_since(ambassador.id, datetime(2026, 3, 1)) == 2
