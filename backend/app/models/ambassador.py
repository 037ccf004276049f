"""Ambassador program core tables: tiers and ambassadors."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    DECIMAL,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base
from backend.app.core.clock import utcnow


class AmbassadorTier(Base):
    """Commission bracket. Reference data: tiers are ordered by min_sales ascending."""
    __tablename__ = 'ambassador_tiers'

    id: Mapped[str] = mapped_column(String(32), primary_key=True)  # bronze, silver, gold
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    min_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    commission_rate: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False)
    recurring_rate: Mapped[Decimal] = mapped_column(DECIMAL(5, 2), nullable=False, default=Decimal("0"))
    recurring_months: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    color: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    icon: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    benefits: Mapped[Optional[List[str]]] = mapped_column(JSON(), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index('ix_ambassador_tiers_min_sales', 'min_sales', unique=True),
    )


class Ambassador(Base):
    """Program participant. Never hard-deleted: deactivate with active=False."""
    __tablename__ = 'ambassadors'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('profiles.user_id'), unique=True, nullable=False)
    referral_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    tier_id: Mapped[str] = mapped_column(String(32), ForeignKey('ambassador_tiers.id'), nullable=False)
    tier_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # Individual rate set by admin; overrides the tier's one-time rate
    custom_commission_rate: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(5, 2), nullable=True)

    # Counters: only ever changed with UPDATE ... SET x = x + delta
    lifetime_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    link_clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_commission: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False, default=Decimal("0"))
    total_earnings: Mapped[Decimal] = mapped_column(DECIMAL(12, 2), nullable=False, default=Decimal("0"))

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Public directory: visible only when active and show_on_public_page
    show_on_public_page: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Payment data
    pix_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bank_data: Mapped[Optional[dict]] = mapped_column(JSON(), nullable=True)
    payment_preference: Mapped[str] = mapped_column(String(20), nullable=False, default="pix")
    minimum_payout: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False, default=Decimal("0"))
    next_payout_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_ambassadors_active_points', 'active', 'total_points'),
        Index('ix_ambassadors_tier_id', 'tier_id'),
        Index('ix_ambassadors_public_page', 'show_on_public_page', 'display_order'),
    )
