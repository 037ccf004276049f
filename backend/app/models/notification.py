from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.core.base import Base
from backend.app.core.clock import utcnow


class AmbassadorNotification(Base):
    """In-app notification (commission_earned, payment_registered, payment_confirmed)."""
    __tablename__ = 'ambassador_notifications'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ambassador_id: Mapped[int] = mapped_column(ForeignKey('ambassadors.id'), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSON(), nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index('ix_ambassador_notifications_ambassador_read', 'ambassador_id', 'read'),
    )
