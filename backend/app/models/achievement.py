"""Gamification: achievement definitions, unlocks and the points ledger."""
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.base import Base
from backend.app.core.clock import utcnow


class AmbassadorAchievement(Base):
    """Badge definition: unlocked when the metric named by requirement_type reaches requirement_value."""
    __tablename__ = 'ambassador_achievements'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    icon: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    requirement_type: Mapped[str] = mapped_column(String(32), nullable=False)  # sales, earnings, clicks, points
    requirement_value: Mapped[int] = mapped_column(Integer, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    badge_color: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)


class AmbassadorUserAchievement(Base):
    """Unlock record. One-way; `notified` flips to True once the client has shown it."""
    __tablename__ = 'ambassador_user_achievements'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ambassador_id: Mapped[int] = mapped_column(ForeignKey('ambassadors.id'), nullable=False)
    achievement_id: Mapped[int] = mapped_column(ForeignKey('ambassador_achievements.id'), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    achievement: Mapped[AmbassadorAchievement] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint('ambassador_id', 'achievement_id', name='uq_ambassador_user_achievement'),
    )


class AmbassadorPoints(Base):
    """Points ledger entry; ambassadors.total_points is its running sum."""
    __tablename__ = 'ambassador_points'

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ambassador_id: Mapped[int] = mapped_column(ForeignKey('ambassadors.id'), nullable=False)
    points_type: Mapped[str] = mapped_column(String(32), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reference_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index('ix_ambassador_points_ambassador_id', 'ambassador_id', 'created_at'),
    )
