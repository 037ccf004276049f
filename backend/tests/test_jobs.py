"""
Tests for background work: the daily scheduler jobs and the payout e-mail webhook.
"""
import json
from datetime import date, datetime
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app import main
from backend.app.models.ambassador import Ambassador
from backend.app.models.payout import AmbassadorPayout
from backend.app.services import payout_notify
from backend.app.services.cache import CacheService
from backend.app.services.payout_notify import send_payout_email
from backend.app.services.referrals import ReferralService


class FakeRedis:
    """Just enough of redis.asyncio.Redis for publishing and cache invalidation."""

    def __init__(self):
        self.published = []
        self.store = {"ambassador:ranking:10": "[]"}

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)["type"]))
        return 1

    async def keys(self, pattern):
        prefix = pattern.rstrip("*")
        return [k for k in self.store if k.startswith(prefix)]

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)


@pytest.fixture
def fake_redis(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(CacheService, "_redis", redis)
    return redis


@pytest.fixture
def job_sessions(test_session: AsyncSession, monkeypatch):
    """Point the scheduler at the test database."""
    monkeypatch.setattr(main, "async_session", async_sessionmaker(test_session.bind, expire_on_commit=False))


# ============================================
# DAILY JOBS
# ============================================

@pytest.mark.asyncio
async def test_daily_jobs_aggregate_on_first_day(
    test_session: AsyncSession,
    ambassador: Ambassador,
    fake_redis,
    job_sessions,
):
    service = ReferralService(test_session)
    referral = await service.record_sale("MARIA1", Decimal("100"), "Plano Anual", sold_at=datetime(2026, 3, 20, 15, 0))
    await service.confirm_referral(referral.id)
    await test_session.commit()

    await main.run_daily_jobs(date(2026, 5, 1))

    payouts = (await test_session.execute(select(AmbassadorPayout))).scalars().all()
    assert len(payouts) == 1
    assert payouts[0].reference_period == "2026-04"
    assert payouts[0].scheduled_date == date(2026, 5, 10)
    assert ("ambassador:%d" % ambassador.id, "payout.updated") in fake_redis.published


@pytest.mark.asyncio
async def test_daily_jobs_skip_aggregation_mid_month(
    test_session: AsyncSession,
    ambassador: Ambassador,
    fake_redis,
    job_sessions,
):
    service = ReferralService(test_session)
    referral = await service.record_sale("MARIA1", Decimal("100"), "Plano Anual", sold_at=datetime(2026, 3, 20, 15, 0))
    await service.confirm_referral(referral.id)
    await test_session.commit()

    await main.run_daily_jobs(date(2026, 5, 2))

    assert (await test_session.execute(select(AmbassadorPayout))).scalars().all() == []


@pytest.mark.asyncio
async def test_daily_jobs_fix_stale_tiers(test_session: AsyncSession, make_ambassador, fake_redis, job_sessions):
    stale = await make_ambassador(9100, "STALE1", tier_id="bronze", lifetime_sales=12)

    await main.run_daily_jobs(date(2026, 5, 2))

    await test_session.refresh(stale)
    assert stale.tier_id == "silver"
    assert ("ambassador:%d" % stale.id, "tier.changed") in fake_redis.published
    # Leaderboard cache dropped after a tier change
    assert fake_redis.store == {}


# ============================================
# PAYOUT E-MAIL WEBHOOK
# ============================================

def _mock_client(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(payout_notify.httpx, "AsyncClient", factory)


@pytest.mark.asyncio
async def test_payout_email_without_url():
    assert await send_payout_email(1) is False


@pytest.mark.asyncio
async def test_payout_email_sent(monkeypatch):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202)

    _mock_client(monkeypatch, handler)
    assert await send_payout_email(7, "paid", webhook_url="https://functions.example.com/payout-email") is True
    assert seen == [{"payout_id": 7, "action": "paid"}]


@pytest.mark.asyncio
async def test_payout_email_rejected(monkeypatch):
    _mock_client(monkeypatch, lambda request: httpx.Response(500, text="boom"))
    assert await send_payout_email(7, webhook_url="https://functions.example.com/payout-email") is False


@pytest.mark.asyncio
async def test_payout_email_network_error(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    _mock_client(monkeypatch, handler)
    assert await send_payout_email(7, webhook_url="https://functions.example.com/payout-email") is False
