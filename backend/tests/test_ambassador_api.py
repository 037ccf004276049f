"""
Tests for the ambassador dashboard API (/ambassadors/me...).

Tests cover:
- X-Ambassador-Token validation (missing, invalid, not enrolled)
- Profile, tier progress, stats, invite link, click analytics
- Payment data
- Achievements, points history and notifications
- Marketing materials list and download counter
"""
import os

import pytest
from httpx import AsyncClient

from backend.app.core.auth import create_ambassador_token
from backend.app.models.ambassador import Ambassador

ADMIN_SECRET = os.getenv("ADMIN_SECRET", "test_admin_secret")


def ambassador_headers(user_id: int) -> dict:
    return {"X-Ambassador-Token": create_ambassador_token(user_id)}


async def _sale(client: AsyncClient, code: str = "MARIA1", amount: float = 100.0) -> dict:
    response = await client.post(
        "/admin/sales",
        headers={"X-Admin-Token": ADMIN_SECRET},
        json={"referral_code": code, "sale_amount": amount, "plan_name": "Plano Anual"},
    )
    assert response.status_code == 200
    return response.json()


# ============================================
# AUTH
# ============================================

@pytest.mark.asyncio
async def test_me_requires_token(client: AsyncClient, tiers):
    response = await client.get("/ambassadors/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_invalid_token(client: AsyncClient, tiers):
    response = await client.get("/ambassadors/me", headers={"X-Ambassador-Token": "not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_expired_token(client: AsyncClient, ambassador: Ambassador):
    token = create_ambassador_token(ambassador.user_id, expires_in_hours=-1)
    response = await client.get("/ambassadors/me", headers={"X-Ambassador-Token": token})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_me_not_enrolled(client: AsyncClient, tiers):
    response = await client.get("/ambassadors/me", headers=ambassador_headers(31337))
    assert response.status_code == 403


# ============================================
# DASHBOARD
# ============================================

@pytest.mark.asyncio
async def test_get_me(client: AsyncClient, ambassador: Ambassador, silver_ambassador: Ambassador):
    response = await client.get("/ambassadors/me", headers=ambassador_headers(silver_ambassador.user_id))

    assert response.status_code == 200
    data = response.json()
    assert data["referral_code"] == "ANA10"
    assert data["full_name"] == "Ana Souza"
    assert data["tier_id"] == "silver"
    # Equal points: earliest enrollment ranks first
    assert data["ranking_position"] == 2


@pytest.mark.asyncio
async def test_get_progress(client: AsyncClient, silver_ambassador: Ambassador):
    response = await client.get("/ambassadors/me/progress", headers=ambassador_headers(silver_ambassador.user_id))

    assert response.status_code == 200
    data = response.json()
    assert data["current_tier"]["id"] == "silver"
    assert data["next_tier"]["id"] == "gold"
    assert data["progress"] == 0.0
    assert data["sales_for_next"] == 20
    assert data["is_max_tier"] is False


@pytest.mark.asyncio
async def test_get_stats_after_sale(client: AsyncClient, ambassador: Ambassador):
    await client.post("/public/clicks", json={"referral_code": "MARIA1"})
    await client.post("/public/clicks", json={"referral_code": "MARIA1"})
    await _sale(client)

    response = await client.get("/ambassadors/me/stats", headers=ambassador_headers(ambassador.user_id))

    assert response.status_code == 200
    data = response.json()
    assert data["total_clicks"] == 2
    assert data["total_conversions"] == 1
    assert data["conversion_rate"] == 50.0
    assert data["pending_commission"] == 5.0
    assert data["this_month_clicks"] == 2
    assert data["this_month_conversions"] == 1
    assert data["this_month_earnings"] == 5.0


@pytest.mark.asyncio
async def test_invite_link(client: AsyncClient, ambassador: Ambassador):
    response = await client.get(
        "/ambassadors/me/invite-link",
        headers=ambassador_headers(ambassador.user_id),
        params={"utm_source": "whatsapp", "utm_campaign": "maes"},
    )
    assert response.json()["link"].endswith("/convite/MARIA1?utm_source=whatsapp&utm_campaign=maes")


@pytest.mark.asyncio
async def test_my_referrals_and_payouts(client: AsyncClient, ambassador: Ambassador, silver_ambassador: Ambassador):
    await _sale(client, "MARIA1")
    await _sale(client, "ANA10")

    headers = ambassador_headers(ambassador.user_id)
    referrals = (await client.get("/ambassadors/me/referrals", headers=headers)).json()
    assert len(referrals) == 1
    assert referrals[0]["ambassador_id"] == ambassador.id

    pending = (await client.get("/ambassadors/me/referrals", headers=headers, params={"status": "confirmed"})).json()
    assert pending == []

    payouts = await client.get("/ambassadors/me/payouts", headers=headers)
    assert payouts.status_code == 200
    assert payouts.json() == []


@pytest.mark.asyncio
async def test_click_analytics(client: AsyncClient, ambassador: Ambassador):
    await client.post("/public/clicks", json={"referral_code": "MARIA1", "utm_source": "instagram"})

    response = await client.get("/ambassadors/me/clicks", headers=ambassador_headers(ambassador.user_id))

    assert response.status_code == 200
    data = response.json()
    assert len(data["daily"]) == 30
    assert data["daily"][-1]["clicks"] == 1
    assert data["by_source"] == [{"name": "instagram", "count": 1}]
    assert data["by_medium"] == [{"name": "organic", "count": 1}]


@pytest.mark.asyncio
async def test_payment_data(client: AsyncClient, ambassador: Ambassador):
    headers = ambassador_headers(ambassador.user_id)

    initial = await client.get("/ambassadors/me/payment-data", headers=headers)
    assert initial.json()["pix_key"] is None

    no_bank = await client.put("/ambassadors/me/payment-data", headers=headers, json={"payment_preference": "bank_transfer"})
    assert no_bank.status_code == 400

    negative = await client.put("/ambassadors/me/payment-data", headers=headers, json={"minimum_payout": -1})
    assert negative.status_code == 422

    updated = await client.put("/ambassadors/me/payment-data", headers=headers, json={
        "pix_key": "maria@example.com", "minimum_payout": 50,
    })
    assert updated.status_code == 200
    assert updated.json()["pix_key"] == "maria@example.com"
    assert updated.json()["minimum_payout"] == 50.0

    again = await client.get("/ambassadors/me/payment-data", headers=headers)
    assert again.json()["pix_key"] == "maria@example.com"


# ============================================
# GAMIFICATION & NOTIFICATIONS
# ============================================

@pytest.mark.asyncio
async def test_achievements_flow(client: AsyncClient, ambassador: Ambassador, achievements):
    await _sale(client)
    headers = ambassador_headers(ambassador.user_id)

    listed = (await client.get("/ambassadors/me/achievements", headers=headers)).json()
    unlocked = {a["name"]: a["unlocked"] for a in listed}
    assert unlocked["Primeira venda"] is True
    assert unlocked["Cem pontos"] is False

    unnotified = (await client.get("/ambassadors/me/achievements/unnotified", headers=headers)).json()
    assert len(unnotified) == 1
    assert unnotified[0]["achievement"]["name"] == "Primeira venda"

    marked = await client.post(f"/ambassadors/me/achievements/{unnotified[0]['id']}/notified", headers=headers)
    assert marked.json() == {"id": unnotified[0]["id"], "notified": True}
    assert (await client.get("/ambassadors/me/achievements/unnotified", headers=headers)).json() == []


@pytest.mark.asyncio
async def test_mark_other_ambassadors_achievement(client: AsyncClient, ambassador: Ambassador, silver_ambassador: Ambassador, achievements):
    await _sale(client, "MARIA1")
    unnotified = (await client.get(
        "/ambassadors/me/achievements/unnotified", headers=ambassador_headers(ambassador.user_id),
    )).json()

    response = await client.post(
        f"/ambassadors/me/achievements/{unnotified[0]['id']}/notified",
        headers=ambassador_headers(silver_ambassador.user_id),
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_points_history(client: AsyncClient, ambassador: Ambassador, achievements):
    await _sale(client)
    response = await client.get("/ambassadors/me/points", headers=ambassador_headers(ambassador.user_id))

    data = response.json()
    assert data["total_points"] == 60
    assert sorted(e["points_type"] for e in data["history"]) == ["achievement", "sale"]


@pytest.mark.asyncio
async def test_notifications(client: AsyncClient, ambassador: Ambassador):
    await _sale(client)
    await _sale(client, amount=50.0)
    headers = ambassador_headers(ambassador.user_id)

    listed = (await client.get("/ambassadors/me/notifications", headers=headers)).json()
    assert listed["unread"] == 2
    assert listed["items"][0]["type"] == "commission_earned"

    first_id = listed["items"][0]["id"]
    read = await client.post(f"/ambassadors/me/notifications/{first_id}/read", headers=headers)
    assert read.json()["read"] is True

    missing = await client.post("/ambassadors/me/notifications/9999/read", headers=headers)
    assert missing.status_code == 404

    all_read = await client.post("/ambassadors/me/notifications/read-all", headers=headers)
    assert all_read.json() == {"updated": 1}
    assert (await client.get("/ambassadors/me/notifications", headers=headers)).json()["unread"] == 0


@pytest.mark.asyncio
async def test_materials_and_download(client: AsyncClient, ambassador: Ambassador):
    admin = {"X-Admin-Token": ADMIN_SECRET}
    template = (await client.post("/admin/materials", headers=admin, json={
        "title": "Convite WhatsApp", "type": "whatsapp_template", "content": "Oi! Conheça o app",
    })).json()
    hidden = (await client.post("/admin/materials", headers=admin, json={
        "title": "Antigo", "type": "pdf", "file_url": "https://cdn.example.com/old.pdf", "active": False,
    })).json()
    headers = ambassador_headers(ambassador.user_id)

    listed = (await client.get("/ambassadors/me/materials", headers=headers)).json()
    assert [m["id"] for m in listed] == [template["id"]]
    assert (await client.get("/ambassadors/me/materials", headers=headers, params={"type": "pdf"})).json() == []

    first = await client.post(f"/ambassadors/me/materials/{template['id']}/download", headers=headers)
    second = await client.post(f"/ambassadors/me/materials/{template['id']}/download", headers=headers)
    assert first.status_code == 200
    assert second.json() == {
        "id": template["id"],
        "file_url": None,
        "content": "Oi! Conheça o app",
        "download_count": 2,
    }

    inactive = await client.post(f"/ambassadors/me/materials/{hidden['id']}/download", headers=headers)
    assert inactive.status_code == 404
    assert (await client.get("/ambassadors/me/materials", headers=headers)).status_code == 200
    assert (await client.get("/ambassadors/me/materials")).status_code == 401
