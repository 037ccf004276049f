"""
WebSocket relay of an ambassador's Redis channel.

The browser cannot send custom headers on a WebSocket handshake, so the
ambassador token comes in the ``token`` query parameter.
"""
import asyncio
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from redis.exceptions import RedisError

from backend.app.core.auth import decode_ambassador_token
from backend.app.core.database import async_session
from backend.app.core.logging import get_logger
from backend.app.services.ambassadors import AmbassadorService
from backend.app.services.cache import CacheService
from backend.app.services.realtime import channel_name

logger = get_logger(__name__)

router = APIRouter()


async def _resolve_ambassador_id(token: Optional[str]) -> Optional[int]:
    user_id = decode_ambassador_token(token) if token else None
    if user_id is None:
        return None
    async with async_session() as session:
        ambassador = await AmbassadorService(session).get_by_user(user_id)
        return ambassador.id if ambassador and ambassador.active else None


async def _pump(websocket: WebSocket, pubsub) -> None:
    async for message in pubsub.listen():
        if message.get("type") == "message":
            await websocket.send_text(message["data"])


async def _drain(websocket: WebSocket) -> None:
    # Client messages are ignored; receive() raises on disconnect
    while True:
        await websocket.receive_text()


@router.websocket("/me/events")
async def ambassador_events(websocket: WebSocket, token: Optional[str] = Query(None)):
    ambassador_id = await _resolve_ambassador_id(token)
    if ambassador_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    redis = await CacheService.get_redis()
    pubsub = redis.pubsub()
    await pubsub.subscribe(channel_name(ambassador_id))
    logger.info("Realtime subscriber connected", ambassador_id=ambassador_id)

    tasks = [asyncio.create_task(_pump(websocket, pubsub)), asyncio.create_task(_drain(websocket))]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("Realtime relay stopped", ambassador_id=ambassador_id, error=str(exc))
    finally:
        try:
            await pubsub.unsubscribe(channel_name(ambassador_id))
            await pubsub.aclose()
        except RedisError as e:
            logger.warning("Realtime unsubscribe failed", ambassador_id=ambassador_id, error=str(e))
        logger.info("Realtime subscriber disconnected", ambassador_id=ambassador_id)
