from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base
from backend.app.core.clock import utcnow


class AmbassadorClick(Base):
    """Append-only referral link click with UTM attribution."""
    __tablename__ = 'ambassador_referral_clicks'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ambassador_id: Mapped[int] = mapped_column(ForeignKey('ambassadors.id'), nullable=False)
    referral_code: Mapped[str] = mapped_column(String(32), nullable=False)
    utm_source: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    utm_medium: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    utm_campaign: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index('ix_ambassador_clicks_ambassador_created', 'ambassador_id', 'created_at'),
    )
