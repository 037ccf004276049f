from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Boolean, Date, DateTime, DECIMAL, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base
from backend.app.core.clock import utcnow


class AmbassadorReferral(Base):
    """One attributed sale and the commission it generated.

    Status: pending -> confirmed -> paid, or cancelled from pending/confirmed.
    Immutable once paid.
    """
    __tablename__ = 'ambassador_referrals'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ambassador_id: Mapped[int] = mapped_column(ForeignKey('ambassadors.id'), nullable=False)
    referred_user_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    subscription_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # Gateway payment id; makes recording idempotent
    payment_reference: Mapped[Optional[str]] = mapped_column(String(128), unique=True, nullable=True)
    plan_name: Mapped[str] = mapped_column(String(128), nullable=False)
    sale_amount: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    tier_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # tier at time of sale
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    payment_confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    payout_eligible_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payout_id: Mapped[Optional[int]] = mapped_column(ForeignKey('ambassador_payouts.id'), nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_ambassador_referrals_ambassador_id', 'ambassador_id'),
        Index('ix_ambassador_referrals_status', 'status'),
        Index('ix_ambassador_referrals_payout_id', 'payout_id'),
        Index('ix_ambassador_referrals_created_at', 'created_at'),
    )
