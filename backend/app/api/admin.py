"""Admin API for the ambassador program - protected by X-Admin-Token (see main.py)."""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import commit_and_publish, get_cache, get_publisher, get_session, raise_http
from backend.app.core.auth import create_ambassador_token
from backend.app.core.constants import MATERIAL_TYPES, PAYMENT_PREFERENCES
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.services.ambassadors import AmbassadorService, ambassador_to_dict, payment_data_to_dict
from backend.app.services.cache import CacheService
from backend.app.services.materials import MaterialService, material_to_dict
from backend.app.services.payout_notify import send_payout_email
from backend.app.services.payouts import PERIOD_RE, PayoutService, payout_to_dict
from backend.app.services.realtime import EventBuffer, RealtimePublisher
from backend.app.services.referrals import ReferralService, referral_to_dict
from backend.app.services.tiers import TierService

router = APIRouter()
logger = get_logger(__name__)


# ============================================
# SCHEMAS
# ============================================

class EnrollSchema(BaseModel):
    user_id: int
    referral_code: Optional[str] = Field(None, max_length=32)


class StatusSchema(BaseModel):
    active: bool


class PublicPageSchema(BaseModel):
    show_on_public_page: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)


class CommissionRateSchema(BaseModel):
    rate: Optional[Decimal] = Field(None, ge=0, le=100)


class PaymentDataSchema(BaseModel):
    pix_key: Optional[str] = Field(None, max_length=255)
    bank_data: Optional[Dict[str, Any]] = None
    payment_preference: Optional[str] = None
    minimum_payout: Optional[Decimal] = Field(None, ge=0)

    @field_validator("payment_preference")
    @classmethod
    def validate_preference(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in PAYMENT_PREFERENCES:
            raise ValueError(f"payment_preference must be one of {PAYMENT_PREFERENCES}")
        return v


class MaterialCreateSchema(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    type: str
    category: Optional[str] = Field(None, max_length=64)
    file_url: Optional[str] = Field(None, max_length=512)
    content: Optional[str] = Field(None, max_length=5000)
    dimensions: Optional[str] = Field(None, max_length=32)
    display_order: int = Field(0, ge=0)
    active: bool = True

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in MATERIAL_TYPES:
            raise ValueError(f"type must be one of {MATERIAL_TYPES}")
        return v


class MaterialUpdateSchema(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    type: Optional[str] = None
    category: Optional[str] = Field(None, max_length=64)
    file_url: Optional[str] = Field(None, max_length=512)
    content: Optional[str] = Field(None, max_length=5000)
    dimensions: Optional[str] = Field(None, max_length=32)
    display_order: Optional[int] = Field(None, ge=0)
    active: Optional[bool] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in MATERIAL_TYPES:
            raise ValueError(f"type must be one of {MATERIAL_TYPES}")
        return v


class SaleSchema(BaseModel):
    referral_code: str = Field(..., min_length=1, max_length=32)
    sale_amount: Decimal = Field(..., gt=0)
    plan_name: str = Field(..., min_length=1, max_length=128)
    referred_user_id: Optional[int] = None
    subscription_id: Optional[str] = Field(None, max_length=64)
    payment_reference: Optional[str] = Field(None, max_length=128)
    is_renewal: bool = False
    original_sale_at: Optional[datetime] = None
    sold_at: Optional[datetime] = None


class ReasonSchema(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PeriodSchema(BaseModel):
    period: str
    as_of: Optional[date] = None

    @field_validator("period")
    @classmethod
    def validate_period(cls, v: str) -> str:
        if not PERIOD_RE.match(v):
            raise ValueError("period must be YYYY-MM")
        return v


class PayoutCreateSchema(PeriodSchema):
    ambassador_id: int
    gross_amount: Optional[Decimal] = Field(None, gt=0)
    attach_referrals: bool = True
    scheduled_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)


class ScheduleSchema(BaseModel):
    scheduled_date: Optional[date] = None


class PaidSchema(BaseModel):
    payment_method: Optional[str] = Field(None, max_length=32)
    paid_at: Optional[datetime] = None


class FailSchema(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    cancel: bool = False


# ============================================
# AMBASSADORS
# ============================================

@router.post("/ambassadors")
async def enroll_ambassador(data: EnrollSchema, session: AsyncSession = Depends(get_session)):
    try:
        ambassador = await AmbassadorService(session).enroll(data.user_id, data.referral_code)
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    return ambassador_to_dict(ambassador)


@router.get("/ambassadors")
async def list_ambassadors(
    active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=100),
    session: AsyncSession = Depends(get_session),
):
    return await AmbassadorService(session).list_ambassadors(active=active, search=search)


@router.get("/ambassadors/{ambassador_id}")
async def get_ambassador(ambassador_id: int, session: AsyncSession = Depends(get_session)):
    service = AmbassadorService(session)
    try:
        ambassador = await service.get(ambassador_id)
    except ServiceError as e:
        raise_http(e)
    data = ambassador_to_dict(ambassador, await service.get_profile(ambassador))
    data["payment_data"] = payment_data_to_dict(ambassador)
    data["stats"] = await service.get_stats(ambassador)
    return data


@router.put("/ambassadors/{ambassador_id}/status")
async def set_ambassador_status(
    ambassador_id: int,
    data: StatusSchema,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    try:
        ambassador = await AmbassadorService(session).set_active(ambassador_id, data.active)
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    await cache.invalidate_ranking()
    await cache.invalidate_public_directory()
    return {"id": ambassador.id, "active": ambassador.active}


@router.put("/ambassadors/{ambassador_id}/public-page")
async def set_public_page(
    ambassador_id: int,
    data: PublicPageSchema,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Show/hide an ambassador on the public directory and set her position."""
    try:
        ambassador = await AmbassadorService(session).set_public_page(
            ambassador_id, data.show_on_public_page, data.display_order,
        )
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    await cache.invalidate_public_directory()
    return {
        "id": ambassador.id,
        "show_on_public_page": ambassador.show_on_public_page,
        "display_order": ambassador.display_order,
    }


@router.put("/ambassadors/{ambassador_id}/commission-rate")
async def set_commission_rate(ambassador_id: int, data: CommissionRateSchema, session: AsyncSession = Depends(get_session)):
    try:
        ambassador = await AmbassadorService(session).set_commission_rate(ambassador_id, data.rate)
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    rate = ambassador.custom_commission_rate
    return {"id": ambassador.id, "custom_commission_rate": float(rate) if rate is not None else None}


@router.put("/ambassadors/{ambassador_id}/payment-data")
async def set_payment_data(ambassador_id: int, data: PaymentDataSchema, session: AsyncSession = Depends(get_session)):
    try:
        ambassador = await AmbassadorService(session).update_payment_data(
            ambassador_id,
            pix_key=data.pix_key,
            bank_data=data.bank_data,
            payment_preference=data.payment_preference,
            minimum_payout=data.minimum_payout,
        )
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    return payment_data_to_dict(ambassador)


@router.post("/ambassadors/{ambassador_id}/token")
async def issue_ambassador_token(ambassador_id: int, session: AsyncSession = Depends(get_session)):
    """Issue a dashboard token (support / impersonation)."""
    try:
        ambassador = await AmbassadorService(session).get(ambassador_id)
    except ServiceError as e:
        raise_http(e)
    return {"token": create_ambassador_token(ambassador.user_id)}


@router.get("/stats")
async def program_stats(session: AsyncSession = Depends(get_session)):
    return await AmbassadorService(session).get_admin_stats()


# ============================================
# SALES & REFERRALS
# ============================================

@router.post("/sales")
async def record_sale(
    data: SaleSchema,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    """Called by the payment integration on a confirmed charge. Never fails for an unknown code."""
    events = EventBuffer()
    try:
        referral = await ReferralService(session, events).record_sale(
            data.referral_code,
            data.sale_amount,
            data.plan_name,
            referred_user_id=data.referred_user_id,
            subscription_id=data.subscription_id,
            payment_reference=data.payment_reference,
            is_renewal=data.is_renewal,
            original_sale_at=data.original_sale_at,
            sold_at=data.sold_at,
        )
    except ServiceError as e:
        raise_http(e)
    if referral is None:
        return {"attributed": False, "referral": None}
    await commit_and_publish(session, events, publisher)
    await cache.invalidate_ranking()
    return {"attributed": True, "referral": referral_to_dict(referral)}


@router.get("/referrals")
async def list_referrals(
    ambassador_id: Optional[int] = None,
    status: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    referrals = await ReferralService(session).list_referrals(ambassador_id, status)
    return [referral_to_dict(r) for r in referrals]


@router.post("/referrals/{referral_id}/confirm")
async def confirm_referral(
    referral_id: int,
    session: AsyncSession = Depends(get_session),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    events = EventBuffer()
    try:
        referral = await ReferralService(session, events).confirm_referral(referral_id)
    except ServiceError as e:
        raise_http(e)
    await commit_and_publish(session, events, publisher)
    return referral_to_dict(referral)


@router.post("/referrals/{referral_id}/cancel")
async def cancel_referral(
    referral_id: int,
    data: ReasonSchema,
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    events = EventBuffer()
    try:
        referral = await ReferralService(session, events).cancel_referral(referral_id, data.reason)
    except ServiceError as e:
        raise_http(e)
    await commit_and_publish(session, events, publisher)
    await cache.invalidate_ranking()
    return referral_to_dict(referral)


# ============================================
# PAYOUTS
# ============================================

@router.get("/payouts")
async def list_payouts(
    ambassador_id: Optional[int] = None,
    status: Optional[str] = None,
    period: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    payouts = await PayoutService(session).list_payouts(ambassador_id, status, period)
    return [payout_to_dict(p) for p in payouts]


@router.post("/payouts/aggregate")
async def aggregate_payouts(
    data: PeriodSchema,
    session: AsyncSession = Depends(get_session),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    events = EventBuffer()
    try:
        payouts = await PayoutService(session, events).aggregate_period(data.period, as_of=data.as_of)
    except ServiceError as e:
        raise_http(e)
    await commit_and_publish(session, events, publisher)
    return {"period": data.period, "created": len(payouts), "payouts": [payout_to_dict(p) for p in payouts]}


@router.post("/payouts")
async def create_payout(
    data: PayoutCreateSchema,
    session: AsyncSession = Depends(get_session),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    events = EventBuffer()
    try:
        payout = await PayoutService(session, events).create_payout(
            data.ambassador_id,
            data.period,
            data.gross_amount,
            attach_referrals=data.attach_referrals,
            scheduled_date=data.scheduled_date,
            notes=data.notes,
        )
    except ServiceError as e:
        raise_http(e)
    await commit_and_publish(session, events, publisher)
    return payout_to_dict(payout)


@router.post("/payouts/{payout_id}/schedule")
async def schedule_payout(
    payout_id: int,
    data: ScheduleSchema,
    session: AsyncSession = Depends(get_session),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    events = EventBuffer()
    try:
        payout = await PayoutService(session, events).schedule_payout(payout_id, data.scheduled_date)
    except ServiceError as e:
        raise_http(e)
    await commit_and_publish(session, events, publisher)
    return payout_to_dict(payout)


@router.post("/payouts/{payout_id}/paid")
async def mark_payout_paid(
    payout_id: int,
    data: PaidSchema,
    session: AsyncSession = Depends(get_session),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    events = EventBuffer()
    try:
        payout = await PayoutService(session, events).mark_paid(payout_id, data.payment_method, data.paid_at)
    except ServiceError as e:
        raise_http(e)
    await commit_and_publish(session, events, publisher)
    email_sent = await send_payout_email(payout.id, "paid")
    result = payout_to_dict(payout)
    result["email_sent"] = email_sent
    return result


@router.post("/payouts/{payout_id}/fail")
async def mark_payout_failed(
    payout_id: int,
    data: FailSchema,
    session: AsyncSession = Depends(get_session),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    events = EventBuffer()
    try:
        payout = await PayoutService(session, events).mark_failed(payout_id, data.reason, cancel=data.cancel)
    except ServiceError as e:
        raise_http(e)
    await commit_and_publish(session, events, publisher)
    return payout_to_dict(payout)


@router.post("/payouts/{payout_id}/cancel")
async def cancel_payout(
    payout_id: int,
    data: ReasonSchema,
    session: AsyncSession = Depends(get_session),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    events = EventBuffer()
    try:
        payout = await PayoutService(session, events).cancel_payout(payout_id, data.reason)
    except ServiceError as e:
        raise_http(e)
    await commit_and_publish(session, events, publisher)
    return payout_to_dict(payout)


# ============================================
# TIERS
# ============================================

@router.post("/tiers/recalculate")
async def recalculate_tiers(
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    events = EventBuffer()
    result = await TierService(session, events).recalculate_all()
    await commit_and_publish(session, events, publisher)
    await cache.invalidate_tiers()
    return result


# ============================================
# MARKETING MATERIALS
# ============================================

@router.get("/materials")
async def list_materials(
    type: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    try:
        materials = await MaterialService(session).list_materials(type=type)
    except ServiceError as e:
        raise_http(e)
    return [material_to_dict(m) for m in materials]


@router.post("/materials")
async def create_material(data: MaterialCreateSchema, session: AsyncSession = Depends(get_session)):
    try:
        material = await MaterialService(session).create_material(**data.model_dump())
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    return material_to_dict(material)


@router.put("/materials/{material_id}")
async def update_material(
    material_id: int,
    data: MaterialUpdateSchema,
    session: AsyncSession = Depends(get_session),
):
    try:
        material = await MaterialService(session).update_material(
            material_id, **data.model_dump(exclude_unset=True)
        )
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    return material_to_dict(material)


@router.delete("/materials/{material_id}")
async def delete_material(material_id: int, session: AsyncSession = Depends(get_session)):
    try:
        await MaterialService(session).delete_material(material_id)
        await session.commit()
    except ServiceError as e:
        raise_http(e)
    return {"status": "deleted", "id": material_id}
