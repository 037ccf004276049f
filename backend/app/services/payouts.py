# backend/app/services/payouts.py
"""
Commission payouts.

The monthly aggregation groups an ambassador's confirmed, unattached and
eligible referrals into one ``scheduled`` payout. Paying the payout moves its
referrals to ``paid`` (terminal) and moves money out of pending_commission into
total_earnings. Admins can also create ``pending`` payouts by hand and schedule
them later.
"""
import re
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import local_midnight_utc, local_today, to_naive_utc, utcnow
from backend.app.core.constants import (
    NOTIFY_PAYMENT_CONFIRMED,
    NOTIFY_PAYMENT_REGISTERED,
    PAYOUT_CANCELLED,
    PAYOUT_PAID,
    PAYOUT_PENDING,
    PAYOUT_SCHEDULED,
    PAYOUT_TRANSITIONS,
    PERCENT_BASE,
    REFERRAL_CONFIRMED,
    REFERRAL_PAID,
    ZERO,
)
from backend.app.core.exceptions import InvalidTransitionError, NotFoundError, ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import payouts_total
from backend.app.core.settings import get_settings
from backend.app.models.ambassador import Ambassador
from backend.app.models.payout import AmbassadorPayout
from backend.app.models.referral import AmbassadorReferral
from backend.app.services.commissions import round_brl, to_decimal
from backend.app.services.notifications import NotificationService
from backend.app.services.realtime import EventBuffer, RealtimeEvents

logger = get_logger(__name__)

PERIOD_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


class PayoutServiceError(ServiceError):
    pass


class InvalidPeriodError(PayoutServiceError):
    def __init__(self, period: str):
        super().__init__(f"Período inválido: {period} (use AAAA-MM)", 400)


class PayoutNotFoundError(NotFoundError):
    def __init__(self, payout_id: int):
        super().__init__(f"Pagamento {payout_id} não encontrado")


class EmptyPayoutError(PayoutServiceError):
    def __init__(self):
        super().__init__("Nenhuma comissão disponível para este pagamento", 400)


def parse_period(period: str) -> Tuple[int, int]:
    m = PERIOD_RE.match(period or "")
    if not m:
        raise InvalidPeriodError(period)
    return int(m.group(1)), int(m.group(2))


def previous_period(today: date) -> str:
    prev = date(today.year, today.month, 1) - relativedelta(months=1)
    return f"{prev.year:04d}-{prev.month:02d}"


def period_bounds(period: str) -> Tuple[datetime, datetime]:
    """[start, end) of a YYYY-MM period as naive UTC, month taken in program timezone."""
    year, month = parse_period(period)
    start = date(year, month, 1)
    return local_midnight_utc(start), local_midnight_utc(start + relativedelta(months=1))


def scheduled_date_for(period: str) -> date:
    """Aggregated payouts for a period are paid on PAYOUT_DAY_OF_MONTH of the following month."""
    year, month = parse_period(period)
    return date(year, month, 1) + relativedelta(months=1, day=get_settings().PAYOUT_DAY_OF_MONTH)


def compute_net(gross: Decimal, withholding_percent: Optional[Decimal] = None) -> Decimal:
    if withholding_percent is None:
        withholding_percent = get_settings().PAYOUT_WITHHOLDING_PERCENT
    gross = round_brl(gross)
    withheld = round_brl(gross * to_decimal(withholding_percent) / PERCENT_BASE)
    return gross - withheld


def ensure_payout_transition(current: str, target: str) -> None:
    if target not in PAYOUT_TRANSITIONS.get(current, ()):
        raise InvalidTransitionError("Pagamento", current, target)


def payout_to_dict(p: AmbassadorPayout) -> Dict[str, Any]:
    return {
        "id": p.id,
        "ambassador_id": p.ambassador_id,
        "reference_period": p.reference_period,
        "total_sales": p.total_sales,
        "gross_amount": float(p.gross_amount),
        "net_amount": float(p.net_amount),
        "status": p.status,
        "payment_method": p.payment_method,
        "scheduled_date": p.scheduled_date.isoformat() if p.scheduled_date else None,
        "paid_at": p.paid_at.isoformat() if p.paid_at else None,
        "notes": p.notes,
        "failure_reason": p.failure_reason,
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


class PayoutService:
    def __init__(self, session: AsyncSession, events: Optional[EventBuffer] = None):
        self.session = session
        self.events = events if events is not None else EventBuffer()
        self.notifications = NotificationService(session, self.events)

    async def get_payout(self, payout_id: int) -> AmbassadorPayout:
        payout = await self.session.get(AmbassadorPayout, payout_id)
        if not payout:
            raise PayoutNotFoundError(payout_id)
        return payout

    async def list_payouts(
        self,
        ambassador_id: Optional[int] = None,
        status: Optional[str] = None,
        period: Optional[str] = None,
    ) -> List[AmbassadorPayout]:
        q = select(AmbassadorPayout).order_by(AmbassadorPayout.scheduled_date.desc(), AmbassadorPayout.id.desc())
        if ambassador_id is not None:
            q = q.where(AmbassadorPayout.ambassador_id == ambassador_id)
        if status:
            q = q.where(AmbassadorPayout.status == status)
        if period:
            q = q.where(AmbassadorPayout.reference_period == period)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def _attached_referrals(self, payout_id: int) -> List[AmbassadorReferral]:
        q = select(AmbassadorReferral).where(AmbassadorReferral.payout_id == payout_id)
        return list((await self.session.execute(q)).scalars().all())

    async def _attach(self, payout_id: int, referral_ids: List[int]) -> None:
        if referral_ids:
            await self.session.execute(
                update(AmbassadorReferral)
                .where(AmbassadorReferral.id.in_(referral_ids))
                .values(payout_id=payout_id)
                .execution_options(synchronize_session="fetch")
            )

    async def _detach(self, payout_id: int) -> None:
        await self.session.execute(
            update(AmbassadorReferral)
            .where(AmbassadorReferral.payout_id == payout_id)
            .values(payout_id=None)
            .execution_options(synchronize_session="fetch")
        )

    async def aggregate_period(self, period: str, as_of: Optional[date] = None) -> List[AmbassadorPayout]:
        """
        Create one scheduled payout per active ambassador for `period` (YYYY-MM).

        Picks confirmed referrals created before the period ends, not yet on a
        payout, whose payout_eligible_date <= as_of. Ambassadors whose total is
        below their minimum_payout are skipped; their referrals stay available
        for a later run. Safe to re-run: attached referrals are never picked twice.
        """
        _, period_end = period_bounds(period)
        as_of = as_of or local_today()
        scheduled = scheduled_date_for(period)

        q = (
            select(AmbassadorReferral, Ambassador)
            .join(Ambassador, Ambassador.id == AmbassadorReferral.ambassador_id)
            .where(
                AmbassadorReferral.status == REFERRAL_CONFIRMED,
                AmbassadorReferral.payout_id.is_(None),
                AmbassadorReferral.created_at < period_end,
                AmbassadorReferral.payout_eligible_date <= as_of,
                Ambassador.active == True,  # noqa: E712
            )
            .order_by(AmbassadorReferral.ambassador_id, AmbassadorReferral.id)
        )
        rows = (await self.session.execute(q)).all()

        grouped: Dict[int, List[AmbassadorReferral]] = defaultdict(list)
        ambassadors: Dict[int, Ambassador] = {}
        for referral, ambassador in rows:
            grouped[ambassador.id].append(referral)
            ambassadors[ambassador.id] = ambassador

        created: List[AmbassadorPayout] = []
        for ambassador_id, referrals in grouped.items():
            ambassador = ambassadors[ambassador_id]
            gross = round_brl(sum((to_decimal(r.commission_amount) for r in referrals), ZERO))
            if gross <= ZERO or gross < to_decimal(ambassador.minimum_payout or 0):
                logger.info(
                    "Payout below minimum, carried over",
                    ambassador_id=ambassador_id,
                    period=period,
                    gross=str(gross),
                    minimum=str(ambassador.minimum_payout),
                )
                continue

            payout = AmbassadorPayout(
                ambassador_id=ambassador_id,
                reference_period=period,
                total_sales=len(referrals),
                gross_amount=gross,
                net_amount=compute_net(gross),
                status=PAYOUT_SCHEDULED,
                payment_method=ambassador.payment_preference,
                scheduled_date=scheduled,
            )
            self.session.add(payout)
            await self.session.flush()
            await self._attach(payout.id, [r.id for r in referrals])
            await self.session.execute(
                update(Ambassador).where(Ambassador.id == ambassador_id).values(next_payout_date=scheduled)
            )

            await self.notifications.create(
                ambassador_id,
                NOTIFY_PAYMENT_REGISTERED,
                "Pagamento agendado",
                f"Seu pagamento de R$ {payout.net_amount:.2f} referente a {period} foi agendado para {scheduled.strftime('%d/%m/%Y')}.",
                {"payout_id": payout.id, "reference_period": period},
            )
            self.events.add(ambassador_id, RealtimeEvents.PAYOUT_UPDATED, {"payout_id": payout.id, "status": payout.status})
            payouts_total.labels(status=PAYOUT_SCHEDULED).inc()
            created.append(payout)

        logger.info("Payout aggregation finished", period=period, as_of=as_of.isoformat(), payouts=len(created))
        return created

    async def create_payout(
        self,
        ambassador_id: int,
        period: str,
        gross_amount: Optional[Any] = None,
        *,
        attach_referrals: bool = True,
        scheduled_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> AmbassadorPayout:
        """Manual payout (pending). Without gross_amount, sums the ambassador's confirmed unattached referrals."""
        parse_period(period)
        ambassador = await self.session.get(Ambassador, ambassador_id)
        if not ambassador:
            raise NotFoundError(f"Embaixadora {ambassador_id} não encontrada")

        referrals: List[AmbassadorReferral] = []
        if attach_referrals:
            q = select(AmbassadorReferral).where(
                AmbassadorReferral.ambassador_id == ambassador_id,
                AmbassadorReferral.status == REFERRAL_CONFIRMED,
                AmbassadorReferral.payout_id.is_(None),
            )
            referrals = list((await self.session.execute(q)).scalars().all())

        if gross_amount is None:
            gross = round_brl(sum((to_decimal(r.commission_amount) for r in referrals), ZERO))
        else:
            gross = round_brl(gross_amount)
        if gross <= ZERO:
            raise EmptyPayoutError()

        payout = AmbassadorPayout(
            ambassador_id=ambassador_id,
            reference_period=period,
            total_sales=len(referrals),
            gross_amount=gross,
            net_amount=compute_net(gross),
            status=PAYOUT_PENDING,
            payment_method=ambassador.payment_preference,
            scheduled_date=scheduled_date or scheduled_date_for(period),
            notes=notes,
        )
        self.session.add(payout)
        await self.session.flush()
        await self._attach(payout.id, [r.id for r in referrals])

        self.events.add(ambassador_id, RealtimeEvents.PAYOUT_UPDATED, {"payout_id": payout.id, "status": payout.status})
        payouts_total.labels(status=PAYOUT_PENDING).inc()
        logger.info("Manual payout created", payout_id=payout.id, ambassador_id=ambassador_id, gross=str(gross))
        return payout

    async def schedule_payout(self, payout_id: int, scheduled_date: Optional[date] = None) -> AmbassadorPayout:
        payout = await self.get_payout(payout_id)
        ensure_payout_transition(payout.status, PAYOUT_SCHEDULED)
        payout.status = PAYOUT_SCHEDULED
        if scheduled_date:
            payout.scheduled_date = scheduled_date
        await self.session.execute(
            update(Ambassador).where(Ambassador.id == payout.ambassador_id).values(next_payout_date=payout.scheduled_date)
        )
        await self.session.flush()

        await self.notifications.create(
            payout.ambassador_id,
            NOTIFY_PAYMENT_REGISTERED,
            "Pagamento agendado",
            f"Seu pagamento de R$ {payout.net_amount:.2f} foi agendado para {payout.scheduled_date.strftime('%d/%m/%Y')}.",
            {"payout_id": payout.id, "reference_period": payout.reference_period},
        )
        self.events.add(payout.ambassador_id, RealtimeEvents.PAYOUT_UPDATED, {"payout_id": payout.id, "status": payout.status})
        payouts_total.labels(status=PAYOUT_SCHEDULED).inc()
        logger.info("Payout scheduled", payout_id=payout.id, scheduled_date=payout.scheduled_date.isoformat())
        return payout

    async def mark_paid(
        self,
        payout_id: int,
        payment_method: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> AmbassadorPayout:
        """scheduled -> paid. Attached referrals become paid and immutable."""
        payout = await self.get_payout(payout_id)
        ensure_payout_transition(payout.status, PAYOUT_PAID)

        referrals = await self._attached_referrals(payout.id)
        attached_commission = round_brl(sum((to_decimal(r.commission_amount) for r in referrals), ZERO))
        for referral in referrals:
            if referral.status == REFERRAL_CONFIRMED:
                referral.status = REFERRAL_PAID

        payout.status = PAYOUT_PAID
        payout.paid_at = to_naive_utc(paid_at) or utcnow()
        if payment_method:
            payout.payment_method = payment_method
        payout.failure_reason = None

        await self.session.execute(
            update(Ambassador)
            .where(Ambassador.id == payout.ambassador_id)
            .values(
                pending_commission=Ambassador.pending_commission - attached_commission,
                total_earnings=Ambassador.total_earnings + to_decimal(payout.net_amount),
                next_payout_date=None,
            )
        )
        await self.session.flush()

        await self.notifications.create(
            payout.ambassador_id,
            NOTIFY_PAYMENT_CONFIRMED,
            "Pagamento realizado!",
            f"Seu pagamento de R$ {payout.net_amount:.2f} referente a {payout.reference_period} foi realizado.",
            {"payout_id": payout.id, "reference_period": payout.reference_period},
        )
        self.events.add(payout.ambassador_id, RealtimeEvents.PAYOUT_UPDATED, {"payout_id": payout.id, "status": payout.status})
        payouts_total.labels(status=PAYOUT_PAID).inc()
        logger.info(
            "Payout paid",
            payout_id=payout.id,
            ambassador_id=payout.ambassador_id,
            net=str(payout.net_amount),
            referrals=len(referrals),
        )
        return payout

    async def mark_failed(self, payout_id: int, reason: str, cancel: bool = False) -> AmbassadorPayout:
        """Record a failed payment attempt. Stays scheduled for retry unless cancel=True."""
        payout = await self.get_payout(payout_id)
        if payout.status != PAYOUT_SCHEDULED:
            raise InvalidTransitionError("Pagamento", payout.status, "failed")
        payout.failure_reason = reason
        logger.error("Payout payment failed", payout_id=payout.id, ambassador_id=payout.ambassador_id, reason=reason)
        if cancel:
            return await self.cancel_payout(payout.id, reason)
        await self.session.flush()
        self.events.add(payout.ambassador_id, RealtimeEvents.PAYOUT_UPDATED, {"payout_id": payout.id, "status": payout.status})
        return payout

    async def cancel_payout(self, payout_id: int, reason: Optional[str] = None) -> AmbassadorPayout:
        """pending/scheduled -> cancelled. Referrals are released for the next aggregation."""
        payout = await self.get_payout(payout_id)
        ensure_payout_transition(payout.status, PAYOUT_CANCELLED)
        payout.status = PAYOUT_CANCELLED
        if reason:
            payout.failure_reason = reason
        await self._detach(payout.id)
        await self.session.execute(
            update(Ambassador).where(Ambassador.id == payout.ambassador_id).values(next_payout_date=None)
        )
        await self.session.flush()

        self.events.add(payout.ambassador_id, RealtimeEvents.PAYOUT_UPDATED, {"payout_id": payout.id, "status": payout.status})
        payouts_total.labels(status=PAYOUT_CANCELLED).inc()
        logger.info("Payout cancelled", payout_id=payout.id, ambassador_id=payout.ambassador_id, reason=reason)
        return payout
