# backend/app/services/achievements.py
"""
Gamification: points ledger and achievement unlocks.

Achievement thresholds are data (ambassador_achievements rows). After a sale
or click the ambassador's metrics are compared with every locked achievement;
unlocking awards the achievement's points, which can in turn satisfy a
``points`` achievement, so the check repeats until nothing new unlocks.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import ACHIEVEMENT_METRICS, POINTS_ACHIEVEMENT, POINTS_HISTORY_PAGE
from backend.app.core.exceptions import NotFoundError
from backend.app.core.logging import get_logger
from backend.app.models.achievement import (
    AmbassadorAchievement,
    AmbassadorPoints,
    AmbassadorUserAchievement,
)
from backend.app.models.ambassador import Ambassador
from backend.app.services.realtime import EventBuffer, RealtimeEvents

logger = get_logger(__name__)


def achievement_to_dict(a: AmbassadorAchievement) -> Dict[str, Any]:
    return {
        "id": a.id,
        "name": a.name,
        "description": a.description,
        "icon": a.icon,
        "category": a.category,
        "requirement_type": a.requirement_type,
        "requirement_value": a.requirement_value,
        "points": a.points,
        "badge_color": a.badge_color,
        "display_order": a.display_order,
    }


def user_achievement_to_dict(ua: AmbassadorUserAchievement, achievement: Optional[AmbassadorAchievement] = None) -> Dict[str, Any]:
    achievement = achievement or ua.achievement
    return {
        "id": ua.id,
        "achievement_id": ua.achievement_id,
        "unlocked_at": ua.unlocked_at.isoformat() if ua.unlocked_at else None,
        "notified": ua.notified,
        "achievement": achievement_to_dict(achievement) if achievement else None,
    }


def metric_value(ambassador: Ambassador, requirement_type: str) -> Optional[float]:
    """Current value of the metric an achievement tracks, or None for unknown types."""
    attr = ACHIEVEMENT_METRICS.get(requirement_type)
    if attr is None:
        return None
    return float(getattr(ambassador, attr) or 0)


class AchievementService:
    def __init__(self, session: AsyncSession, events: Optional[EventBuffer] = None):
        self.session = session
        self.events = events if events is not None else EventBuffer()

    async def list_achievements(self, active_only: bool = True) -> List[AmbassadorAchievement]:
        q = select(AmbassadorAchievement).order_by(AmbassadorAchievement.display_order, AmbassadorAchievement.id)
        if active_only:
            q = q.where(AmbassadorAchievement.active == True)  # noqa: E712
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def list_unlocked(self, ambassador_id: int, only_unnotified: bool = False) -> List[AmbassadorUserAchievement]:
        q = (
            select(AmbassadorUserAchievement)
            .where(AmbassadorUserAchievement.ambassador_id == ambassador_id)
            .order_by(AmbassadorUserAchievement.unlocked_at.desc(), AmbassadorUserAchievement.id.desc())
        )
        if only_unnotified:
            q = q.where(AmbassadorUserAchievement.notified == False)  # noqa: E712
        result = await self.session.execute(q)
        return list(result.unique().scalars().all())

    async def mark_notified(self, user_achievement_id: int, ambassador_id: int) -> AmbassadorUserAchievement:
        """One-way: once notified, an unlock never shows as new again."""
        ua = await self.session.get(AmbassadorUserAchievement, user_achievement_id)
        if not ua or ua.ambassador_id != ambassador_id:
            raise NotFoundError("Conquista não encontrada")
        if not ua.notified:
            ua.notified = True
            await self.session.flush()
        return ua

    async def award_points(
        self,
        ambassador_id: int,
        points: int,
        points_type: str,
        description: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> Optional[AmbassadorPoints]:
        if points <= 0:
            return None
        entry = AmbassadorPoints(
            ambassador_id=ambassador_id,
            points_type=points_type,
            points=points,
            description=description,
            reference_id=reference_id,
        )
        self.session.add(entry)
        await self.session.execute(
            update(Ambassador)
            .where(Ambassador.id == ambassador_id)
            .values(total_points=Ambassador.total_points + points)
        )
        await self.session.flush()
        return entry

    async def points_history(self, ambassador_id: int, limit: int = POINTS_HISTORY_PAGE) -> List[AmbassadorPoints]:
        q = (
            select(AmbassadorPoints)
            .where(AmbassadorPoints.ambassador_id == ambassador_id)
            .order_by(AmbassadorPoints.created_at.desc(), AmbassadorPoints.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def check_achievements(self, ambassador: Ambassador) -> List[AmbassadorAchievement]:
        """Unlock every achievement the ambassador now qualifies for. Returns the new unlocks."""
        achievements = await self.list_achievements()
        unlocked_ids = set(
            (await self.session.execute(
                select(AmbassadorUserAchievement.achievement_id)
                .where(AmbassadorUserAchievement.ambassador_id == ambassador.id)
            )).scalars().all()
        )
        skipped_types = set()
        newly_unlocked: List[AmbassadorAchievement] = []

        while True:
            await self.session.flush()
            await self.session.refresh(ambassador)
            round_unlocks = []
            for achievement in achievements:
                if achievement.id in unlocked_ids:
                    continue
                value = metric_value(ambassador, achievement.requirement_type)
                if value is None:
                    skipped_types.add(achievement.requirement_type)
                    continue
                if value >= achievement.requirement_value:
                    round_unlocks.append(achievement)

            if not round_unlocks:
                break

            for achievement in round_unlocks:
                self.session.add(AmbassadorUserAchievement(
                    ambassador_id=ambassador.id,
                    achievement_id=achievement.id,
                ))
                unlocked_ids.add(achievement.id)
                await self.award_points(
                    ambassador.id,
                    achievement.points,
                    POINTS_ACHIEVEMENT,
                    description=f"Conquista: {achievement.name}",
                    reference_id=str(achievement.id),
                )
                self.events.add(ambassador.id, RealtimeEvents.ACHIEVEMENT_UNLOCKED, {"achievement_id": achievement.id})
                logger.info("Achievement unlocked", ambassador_id=ambassador.id, achievement_id=achievement.id)
                newly_unlocked.append(achievement)

        if skipped_types:
            logger.warning("Unknown achievement requirement types skipped", types=sorted(skipped_types))
        return newly_unlocked
