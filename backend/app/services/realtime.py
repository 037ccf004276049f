# backend/app/services/realtime.py
"""
Realtime dashboard notifications over Redis pub/sub.

Each ambassador has one channel (``ambassador:{id}``). Messages are
cache-invalidation signals: clients re-fetch on any message and must not rely
on ordering between event types.

Services queue events in an ``EventBuffer`` while they work; the caller
flushes the buffer only after the transaction commits, so a subscriber that
re-fetches never sees pre-commit state.
"""
import json
from typing import Any, Dict, Iterator, List, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from backend.app.core.clock import utcnow
from backend.app.core.logging import get_logger

logger = get_logger(__name__)

CHANNEL_PREFIX = "ambassador:"


class RealtimeEvents:
    """Event names published on ambassador channels."""

    REFERRAL_CREATED = "referral.created"
    REFERRAL_UPDATED = "referral.updated"
    TIER_CHANGED = "tier.changed"
    CLICK_CREATED = "click.created"
    ACHIEVEMENT_UNLOCKED = "achievement.unlocked"
    PAYOUT_UPDATED = "payout.updated"
    NOTIFICATION_CREATED = "notification.created"


def channel_name(ambassador_id: int) -> str:
    return f"{CHANNEL_PREFIX}{ambassador_id}"


class RealtimePublisher:
    """Publishes event messages; failures are logged, never raised."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def publish(self, ambassador_id: int, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        message = json.dumps(
            {
                "type": event,
                "ambassador_id": ambassador_id,
                "payload": payload or {},
                "sent_at": utcnow().isoformat(),
            },
            ensure_ascii=False,
            default=str,
        )
        try:
            await self.redis.publish(channel_name(ambassador_id), message)
            return True
        except (RedisError, OSError) as e:
            logger.warning("Realtime publish failed", ambassador_id=ambassador_id, event=event, error=str(e))
            return False


class EventBuffer:
    """Events collected during a unit of work, published after commit."""

    def __init__(self) -> None:
        self._events: List[Tuple[int, str, Dict[str, Any]]] = []

    def add(self, ambassador_id: int, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self._events.append((ambassador_id, event, payload or {}))

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Tuple[int, str, Dict[str, Any]]]:
        return iter(self._events)

    def clear(self) -> None:
        self._events.clear()

    async def flush(self, publisher: RealtimePublisher) -> int:
        """Publish and drop queued events. Returns number successfully published."""
        sent = 0
        for ambassador_id, event, payload in self._events:
            if await publisher.publish(ambassador_id, event, payload):
                sent += 1
        self._events.clear()
        return sent
