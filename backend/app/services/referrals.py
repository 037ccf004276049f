# backend/app/services/referrals.py
"""
Referral recording and lifecycle.

A confirmed sale carrying a referral code becomes an AmbassadorReferral in
``pending`` status. Recording never blocks the purchase: an unknown or
inactive code is logged and the call returns None.

Counters on the ambassador row (pending_commission, lifetime_sales,
total_points) are only changed with ``SET x = x + delta`` so concurrent sales
for one ambassador cannot lose updates.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import to_local_date, to_naive_utc, utcnow
from backend.app.core.constants import (
    NOTIFY_COMMISSION_EARNED,
    POINTS_RECURRING_SALE,
    POINTS_SALE,
    REFERRAL_CANCELLED,
    REFERRAL_CONFIRMED,
    REFERRAL_PENDING,
    REFERRAL_TRANSITIONS,
    ZERO,
)
from backend.app.core.exceptions import InvalidTransitionError, NotFoundError, ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import (
    attribution_failures_total,
    commission_amount_total,
    referral_transitions_total,
    referrals_recorded_total,
)
from backend.app.core.settings import get_settings
from backend.app.models.ambassador import Ambassador
from backend.app.models.referral import AmbassadorReferral
from backend.app.services.achievements import AchievementService
from backend.app.services.commissions import (
    calculate_commission,
    get_effective_commission_rate,
    recurring_commission_applies,
    to_decimal,
)
from backend.app.services.notifications import NotificationService
from backend.app.services.realtime import EventBuffer, RealtimeEvents
from backend.app.services.tiers import TierService

logger = get_logger(__name__)


class ReferralServiceError(ServiceError):
    pass


class InvalidSaleError(ReferralServiceError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class ReferralNotFoundError(NotFoundError):
    def __init__(self, referral_id: int):
        super().__init__(f"Indicação {referral_id} não encontrada")


class ReferralLockedError(ReferralServiceError):
    """Referral is attached to a payout and can only change through it."""

    def __init__(self, referral_id: int):
        super().__init__(f"Indicação {referral_id} está vinculada a um pagamento", 409)


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def ensure_referral_transition(current: str, target: str) -> None:
    if target not in REFERRAL_TRANSITIONS.get(current, ()):
        raise InvalidTransitionError("Indicação", current, target)


def referral_to_dict(r: AmbassadorReferral) -> Dict[str, Any]:
    return {
        "id": r.id,
        "ambassador_id": r.ambassador_id,
        "referred_user_id": r.referred_user_id,
        "subscription_id": r.subscription_id,
        "plan_name": r.plan_name,
        "sale_amount": float(r.sale_amount),
        "commission_rate": float(r.commission_rate),
        "commission_amount": float(r.commission_amount),
        "tier_id": r.tier_id,
        "is_recurring": r.is_recurring,
        "status": r.status,
        "payment_confirmed_at": r.payment_confirmed_at.isoformat() if r.payment_confirmed_at else None,
        "payout_eligible_date": r.payout_eligible_date.isoformat() if r.payout_eligible_date else None,
        "payout_id": r.payout_id,
        "cancel_reason": r.cancel_reason,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


class ReferralService:
    def __init__(self, session: AsyncSession, events: Optional[EventBuffer] = None):
        self.session = session
        self.events = events if events is not None else EventBuffer()
        self.tiers = TierService(session, self.events)
        self.achievements = AchievementService(session, self.events)
        self.notifications = NotificationService(session, self.events)

    async def get_referral(self, referral_id: int) -> AmbassadorReferral:
        referral = await self.session.get(AmbassadorReferral, referral_id)
        if not referral:
            raise ReferralNotFoundError(referral_id)
        return referral

    async def list_referrals(self, ambassador_id: Optional[int] = None, status: Optional[str] = None) -> List[AmbassadorReferral]:
        q = select(AmbassadorReferral).order_by(AmbassadorReferral.created_at.desc(), AmbassadorReferral.id.desc())
        if ambassador_id is not None:
            q = q.where(AmbassadorReferral.ambassador_id == ambassador_id)
        if status:
            q = q.where(AmbassadorReferral.status == status)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def _find_by_payment_reference(self, payment_reference: str) -> Optional[AmbassadorReferral]:
        q = select(AmbassadorReferral).where(AmbassadorReferral.payment_reference == payment_reference)
        return (await self.session.execute(q)).scalar_one_or_none()

    async def _find_active_ambassador(self, referral_code: str) -> Optional[Ambassador]:
        code = normalize_code(referral_code)
        if not code:
            return None
        q = select(Ambassador).where(Ambassador.referral_code == code)
        ambassador = (await self.session.execute(q)).scalar_one_or_none()
        if ambassador is None or not ambassador.active:
            return None
        return ambassador

    async def _apply_counters(self, ambassador_id: int, commission_delta: Decimal, sales_delta: int) -> None:
        await self.session.execute(
            update(Ambassador)
            .where(Ambassador.id == ambassador_id)
            .values(
                pending_commission=Ambassador.pending_commission + commission_delta,
                lifetime_sales=Ambassador.lifetime_sales + sales_delta,
            )
        )

    async def record_sale(
        self,
        referral_code: str,
        sale_amount: Any,
        plan_name: str,
        *,
        referred_user_id: Optional[int] = None,
        subscription_id: Optional[str] = None,
        payment_reference: Optional[str] = None,
        is_renewal: bool = False,
        original_sale_at: Optional[datetime] = None,
        sold_at: Optional[datetime] = None,
    ) -> Optional[AmbassadorReferral]:
        """
        Attribute a confirmed sale to the ambassador owning `referral_code`.

        Returns the new (or, for a repeated payment_reference, the existing)
        referral, or None when the sale is not attributable. Only malformed
        input raises.
        """
        amount = to_decimal(sale_amount)
        if amount <= ZERO:
            raise InvalidSaleError("Valor da venda deve ser maior que zero")
        if not (plan_name or "").strip():
            raise InvalidSaleError("Informe o plano vendido")

        if payment_reference:
            existing = await self._find_by_payment_reference(payment_reference)
            if existing:
                logger.info("Sale already attributed", payment_reference=payment_reference, referral_id=existing.id)
                return existing

        ambassador = await self._find_active_ambassador(referral_code)
        if ambassador is None:
            attribution_failures_total.labels(reason="unknown_or_inactive_code").inc()
            logger.warning("Sale not attributed: unknown or inactive referral code", referral_code=referral_code)
            return None

        sold_at = to_naive_utc(sold_at) or utcnow()
        original_sale_at = to_naive_utc(original_sale_at)
        tier = await self.tiers.get_tier_for(ambassador)

        if is_renewal:
            if tier is None or original_sale_at is None or not recurring_commission_applies(tier, original_sale_at, sold_at):
                attribution_failures_total.labels(reason="recurring_window_closed").inc()
                logger.info(
                    "Renewal outside recurring commission window",
                    ambassador_id=ambassador.id,
                    subscription_id=subscription_id,
                )
                return None
            rate = to_decimal(tier.recurring_rate)
        else:
            rate = get_effective_commission_rate(ambassador, tier)

        commission = calculate_commission(amount, rate)
        settings = get_settings()
        referral = AmbassadorReferral(
            ambassador_id=ambassador.id,
            referred_user_id=referred_user_id,
            subscription_id=subscription_id,
            payment_reference=payment_reference,
            plan_name=plan_name.strip(),
            sale_amount=amount,
            commission_rate=rate,
            commission_amount=commission,
            tier_id=tier.id if tier else None,
            is_recurring=is_renewal,
            status=REFERRAL_PENDING,
            payout_eligible_date=to_local_date(sold_at) + timedelta(days=settings.PAYOUT_ELIGIBILITY_DAYS),
            created_at=sold_at,
        )
        self.session.add(referral)
        await self.session.flush()

        # Renewals pay commission but are not new sales for tier purposes
        await self._apply_counters(ambassador.id, commission, 0 if is_renewal else 1)

        if is_renewal:
            await self.achievements.award_points(
                ambassador.id, settings.POINTS_PER_RECURRING_SALE, POINTS_RECURRING_SALE,
                description=f"Renovação: {referral.plan_name}", reference_id=str(referral.id),
            )
        else:
            await self.achievements.award_points(
                ambassador.id, settings.POINTS_PER_SALE, POINTS_SALE,
                description=f"Venda: {referral.plan_name}", reference_id=str(referral.id),
            )

        await self.notifications.create(
            ambassador.id,
            NOTIFY_COMMISSION_EARNED,
            "Comissão de renovação!" if is_renewal else "Nova venda!",
            f"Você ganhou R$ {commission:.2f} de comissão ({referral.plan_name}).",
            {"referral_id": referral.id, "commission_amount": str(commission)},
        )

        await self.tiers.recalculate(ambassador)
        await self.achievements.check_achievements(ambassador)

        self.events.add(ambassador.id, RealtimeEvents.REFERRAL_CREATED, {
            "referral_id": referral.id,
            "commission_amount": str(commission),
            "is_recurring": is_renewal,
        })
        referrals_recorded_total.labels(tier=referral.tier_id or "none", recurring=str(is_renewal).lower()).inc()
        commission_amount_total.inc(float(commission))
        logger.info(
            "Referral recorded",
            ambassador_id=ambassador.id,
            referral_id=referral.id,
            sale_amount=str(amount),
            commission=str(commission),
            rate=str(rate),
            recurring=is_renewal,
        )
        return referral

    async def confirm_referral(self, referral_id: int, confirmed_at: Optional[datetime] = None) -> AmbassadorReferral:
        """pending -> confirmed, once the payment gateway reports the charge as settled."""
        referral = await self.get_referral(referral_id)
        ensure_referral_transition(referral.status, REFERRAL_CONFIRMED)
        referral.status = REFERRAL_CONFIRMED
        referral.payment_confirmed_at = to_naive_utc(confirmed_at) or utcnow()
        await self.session.flush()

        referral_transitions_total.labels(status=REFERRAL_CONFIRMED).inc()
        self.events.add(referral.ambassador_id, RealtimeEvents.REFERRAL_UPDATED, {"referral_id": referral.id, "status": referral.status})
        logger.info("Referral confirmed", referral_id=referral.id, ambassador_id=referral.ambassador_id)
        return referral

    async def cancel_referral(self, referral_id: int, reason: Optional[str] = None) -> AmbassadorReferral:
        """pending/confirmed -> cancelled (refund, chargeback). Reverses the counters it added."""
        referral = await self.get_referral(referral_id)
        ensure_referral_transition(referral.status, REFERRAL_CANCELLED)
        if referral.payout_id is not None:
            raise ReferralLockedError(referral.id)

        referral.status = REFERRAL_CANCELLED
        referral.cancel_reason = reason
        await self.session.flush()

        await self._apply_counters(
            referral.ambassador_id,
            -to_decimal(referral.commission_amount),
            0 if referral.is_recurring else -1,
        )
        ambassador = await self.session.get(Ambassador, referral.ambassador_id)
        if ambassador is not None:
            await self.tiers.recalculate(ambassador)

        referral_transitions_total.labels(status=REFERRAL_CANCELLED).inc()
        self.events.add(referral.ambassador_id, RealtimeEvents.REFERRAL_UPDATED, {"referral_id": referral.id, "status": referral.status})
        logger.info("Referral cancelled", referral_id=referral.id, ambassador_id=referral.ambassador_id, reason=reason)
        return referral
