from typing import AsyncGenerator, NoReturn, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import decode_ambassador_token
from backend.app.core.database import async_session
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import bind_request_context, get_logger
from backend.app.core.settings import get_settings
from backend.app.models.ambassador import Ambassador
from backend.app.services.cache import CacheService
from backend.app.services.realtime import EventBuffer, RealtimePublisher
from backend.app.services.ambassadors import AmbassadorService

logger = get_logger(__name__)


# Database session per request
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session


# Cache service per request
async def get_cache() -> AsyncGenerator[CacheService, None]:
    redis = await CacheService.get_redis()
    yield CacheService(redis)


# Realtime publisher shares the cache's Redis connection
async def get_publisher() -> AsyncGenerator[RealtimePublisher, None]:
    redis = await CacheService.get_redis()
    yield RealtimePublisher(redis)


async def require_admin_token(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")):
    """Require admin token. If ADMIN_SECRET is not configured, reject all requests (fail-closed)."""
    admin_secret = get_settings().ADMIN_SECRET
    if not admin_secret:
        logger.warning("ADMIN_SECRET not configured, admin endpoints are blocked")
        raise HTTPException(status_code=503, detail="Admin panel not configured (ADMIN_SECRET missing)")
    if not x_admin_token or x_admin_token != admin_secret:
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")


async def require_ambassador(
    x_ambassador_token: Optional[str] = Header(None, alias="X-Ambassador-Token"),
    session: AsyncSession = Depends(get_session),
) -> Ambassador:
    """Dependency: require valid ambassador token, return the caller's ambassador row."""
    if not x_ambassador_token:
        raise HTTPException(status_code=401, detail="Autenticação necessária")
    user_id = decode_ambassador_token(x_ambassador_token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Token inválido ou expirado")
    ambassador = await AmbassadorService(session).get_by_user(user_id)
    if ambassador is None:
        raise HTTPException(status_code=403, detail="Usuária não participa do programa de embaixadoras")
    bind_request_context(ambassador_id=ambassador.id)
    return ambassador


def raise_http(e: ServiceError) -> NoReturn:
    """Convert service exceptions to HTTP exceptions."""
    raise HTTPException(status_code=e.status_code, detail=e.message)


async def commit_and_publish(session: AsyncSession, events: EventBuffer, publisher: RealtimePublisher) -> None:
    """Commit the unit of work, then push its realtime events."""
    await session.commit()
    if len(events):
        await events.flush(publisher)
