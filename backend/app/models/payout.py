from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, DECIMAL, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base
from backend.app.core.clock import utcnow


class AmbassadorPayout(Base):
    """Aggregated commission payment for one ambassador and reference period (YYYY-MM).

    Status: pending -> scheduled -> paid, or cancelled. paid/cancelled are terminal.
    """
    __tablename__ = 'ambassador_payouts'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ambassador_id: Mapped[int] = mapped_column(ForeignKey('ambassadors.id'), nullable=False)
    reference_period: Mapped[str] = mapped_column(String(7), nullable=False)
    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gross_amount: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    payment_method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_ambassador_payouts_ambassador_id', 'ambassador_id'),
        Index('ix_ambassador_payouts_status', 'status'),
        Index('ix_ambassador_payouts_scheduled_date', 'scheduled_date'),
    )
