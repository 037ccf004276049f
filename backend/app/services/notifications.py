"""In-app notifications shown on the ambassador dashboard."""
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.constants import NOTIFICATIONS_PAGE
from backend.app.core.exceptions import NotFoundError
from backend.app.models.notification import AmbassadorNotification
from backend.app.services.realtime import EventBuffer, RealtimeEvents


def notification_to_dict(n: AmbassadorNotification) -> Dict[str, Any]:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "metadata": n.metadata_ or {},
        "read": n.read,
        "read_at": n.read_at.isoformat() if n.read_at else None,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


class NotificationService:
    def __init__(self, session: AsyncSession, events: Optional[EventBuffer] = None):
        self.session = session
        self.events = events if events is not None else EventBuffer()

    async def create(
        self,
        ambassador_id: int,
        type: str,
        title: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AmbassadorNotification:
        notification = AmbassadorNotification(
            ambassador_id=ambassador_id,
            type=type,
            title=title,
            message=message,
            metadata_=metadata or {},
        )
        self.session.add(notification)
        await self.session.flush()
        self.events.add(ambassador_id, RealtimeEvents.NOTIFICATION_CREATED, {"notification_id": notification.id, "type": type})
        return notification

    async def list_notifications(self, ambassador_id: int, limit: int = NOTIFICATIONS_PAGE) -> List[AmbassadorNotification]:
        q = (
            select(AmbassadorNotification)
            .where(AmbassadorNotification.ambassador_id == ambassador_id)
            .order_by(AmbassadorNotification.created_at.desc(), AmbassadorNotification.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def unread_count(self, ambassador_id: int) -> int:
        q = select(func.count(AmbassadorNotification.id)).where(
            AmbassadorNotification.ambassador_id == ambassador_id,
            AmbassadorNotification.read == False,  # noqa: E712
        )
        return (await self.session.execute(q)).scalar() or 0

    async def mark_read(self, notification_id: int, ambassador_id: int) -> AmbassadorNotification:
        notification = await self.session.get(AmbassadorNotification, notification_id)
        if not notification or notification.ambassador_id != ambassador_id:
            raise NotFoundError("Notificação não encontrada")
        if not notification.read:
            notification.read = True
            notification.read_at = utcnow()
            await self.session.flush()
        return notification

    async def mark_all_read(self, ambassador_id: int) -> int:
        result = await self.session.execute(
            update(AmbassadorNotification)
            .where(
                AmbassadorNotification.ambassador_id == ambassador_id,
                AmbassadorNotification.read == False,  # noqa: E712
            )
            .values(read=True, read_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
