"""Ambassador dashboard API - protected by X-Ambassador-Token."""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, raise_http, require_ambassador
from backend.app.core.exceptions import ServiceError
from backend.app.models.ambassador import Ambassador
from backend.app.services.achievements import AchievementService, achievement_to_dict, user_achievement_to_dict
from backend.app.services.ambassadors import (
    AmbassadorService,
    ambassador_to_dict,
    build_invite_link,
    payment_data_to_dict,
)
from backend.app.services.clicks import ClickService
from backend.app.services.materials import MaterialService, material_to_dict
from backend.app.services.notifications import NotificationService, notification_to_dict
from backend.app.services.payouts import PayoutService, payout_to_dict
from backend.app.services.ranking import get_position
from backend.app.services.referrals import ReferralService, referral_to_dict
from backend.app.services.tiers import TierService

router = APIRouter()


class PaymentDataUpdate(BaseModel):
    pix_key: Optional[str] = Field(None, max_length=255)
    bank_data: Optional[Dict[str, Any]] = None
    payment_preference: Optional[str] = None
    minimum_payout: Optional[float] = Field(None, ge=0)


@router.get("/me")
async def get_me(
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    service = AmbassadorService(session)
    profile = await service.get_profile(ambassador)
    data = ambassador_to_dict(ambassador, profile)
    data["ranking_position"] = await get_position(session, ambassador.id)
    return data


@router.get("/me/progress")
async def get_progress(
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    progress = await TierService(session).get_progress(ambassador)
    return progress.to_dict()


@router.get("/me/stats")
async def get_stats(
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    return await AmbassadorService(session).get_stats(ambassador)


@router.get("/me/invite-link")
async def get_invite_link(
    utm_source: Optional[str] = None,
    utm_medium: Optional[str] = None,
    utm_campaign: Optional[str] = None,
    ambassador: Ambassador = Depends(require_ambassador),
):
    return {"link": build_invite_link(ambassador.referral_code, utm_source, utm_medium, utm_campaign)}


@router.get("/me/referrals")
async def list_my_referrals(
    status: Optional[str] = None,
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    referrals = await ReferralService(session).list_referrals(ambassador.id, status)
    return [referral_to_dict(r) for r in referrals]


@router.get("/me/payouts")
async def list_my_payouts(
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    payouts = await PayoutService(session).list_payouts(ambassador_id=ambassador.id)
    return [payout_to_dict(p) for p in payouts]


@router.get("/me/clicks")
async def get_click_analytics(
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    return await ClickService(session).get_analytics(ambassador.id)


@router.get("/me/payment-data")
async def get_payment_data(ambassador: Ambassador = Depends(require_ambassador)):
    return payment_data_to_dict(ambassador)


@router.put("/me/payment-data")
async def update_payment_data(
    data: PaymentDataUpdate,
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    try:
        updated = await AmbassadorService(session).update_payment_data(
            ambassador.id,
            pix_key=data.pix_key,
            bank_data=data.bank_data,
            payment_preference=data.payment_preference,
            minimum_payout=data.minimum_payout,
        )
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    return payment_data_to_dict(updated)


@router.get("/me/achievements")
async def list_achievements(
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    """All active achievements with the caller's unlocks."""
    service = AchievementService(session)
    achievements = await service.list_achievements()
    unlocked = {ua.achievement_id: ua for ua in await service.list_unlocked(ambassador.id)}
    result = []
    for a in achievements:
        item = achievement_to_dict(a)
        ua = unlocked.get(a.id)
        item["unlocked"] = ua is not None
        item["unlocked_at"] = ua.unlocked_at.isoformat() if ua else None
        result.append(item)
    return result


@router.get("/me/achievements/unnotified")
async def list_unnotified_achievements(
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    unlocked = await AchievementService(session).list_unlocked(ambassador.id, only_unnotified=True)
    return [user_achievement_to_dict(ua) for ua in unlocked]


@router.post("/me/achievements/{user_achievement_id}/notified")
async def mark_achievement_notified(
    user_achievement_id: int,
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    try:
        ua = await AchievementService(session).mark_notified(user_achievement_id, ambassador.id)
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    return {"id": ua.id, "notified": ua.notified}


@router.get("/me/points")
async def points_history(
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    entries = await AchievementService(session).points_history(ambassador.id)
    return {
        "total_points": ambassador.total_points,
        "history": [
            {
                "id": e.id,
                "points_type": e.points_type,
                "points": e.points,
                "description": e.description,
                "reference_id": e.reference_id,
                "created_at": e.created_at.isoformat() if e.created_at else None,
            }
            for e in entries
        ],
    }


@router.get("/me/notifications")
async def list_notifications(
    limit: int = Query(50, ge=1, le=100),
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    service = NotificationService(session)
    notifications = await service.list_notifications(ambassador.id, limit=limit)
    return {
        "unread": await service.unread_count(ambassador.id),
        "items": [notification_to_dict(n) for n in notifications],
    }


@router.post("/me/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    try:
        notification = await NotificationService(session).mark_read(notification_id, ambassador.id)
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    return notification_to_dict(notification)


@router.post("/me/notifications/read-all")
async def mark_all_notifications_read(
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    updated = await NotificationService(session).mark_all_read(ambassador.id)
    await session.commit()
    return {"updated": updated}


@router.get("/me/materials")
async def list_my_materials(
    type: Optional[str] = Query(None),
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    try:
        materials = await MaterialService(session).list_materials(type=type, active_only=True)
    except ServiceError as e:
        raise_http(e)
    return [material_to_dict(m) for m in materials]


@router.post("/me/materials/{material_id}/download")
async def download_material(
    material_id: int,
    ambassador: Ambassador = Depends(require_ambassador),
    session: AsyncSession = Depends(get_session),
):
    """Counts the download (or template copy) and hands back what to use."""
    try:
        material = await MaterialService(session).register_download(material_id)
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    return {
        "id": material.id,
        "file_url": material.file_url,
        "content": material.content,
        "download_count": material.download_count,
    }
