"""
Public API endpoints for the program's landing pages
- No authentication required
- Tier table, leaderboard and ambassador directory are cached in Redis
- Click logging is rate limited per IP
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import commit_and_publish, get_cache, get_publisher, get_session
from backend.app.core.limiter import limiter
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.services.ambassadors import AmbassadorService, build_invite_link
from backend.app.services.cache import CacheService
from backend.app.services.clicks import ClickService
from backend.app.services.ranking import get_ranking
from backend.app.services.realtime import EventBuffer, RealtimePublisher
from backend.app.services.tiers import TierService, tier_to_dict

logger = get_logger(__name__)

router = APIRouter()


class ClickRequest(BaseModel):
    referral_code: str = Field(..., min_length=1, max_length=32)
    utm_source: Optional[str] = Field(None, max_length=128)
    utm_medium: Optional[str] = Field(None, max_length=128)
    utm_campaign: Optional[str] = Field(None, max_length=128)


@router.get("/tiers")
async def list_tiers(
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Tier table ordered by min_sales (cached 1h)."""
    cached = await cache.get_tiers()
    if cached is not None:
        return cached
    tiers = [tier_to_dict(t) for t in await TierService(session).list_tiers()]
    await cache.set_tiers(tiers)
    return tiers


@router.get("/ranking")
async def ranking(
    limit: Optional[int] = Query(None, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Leaderboard of active ambassadors by points (cached 60s)."""
    if limit is None:
        limit = get_settings().RANKING_LIMIT
    cached = await cache.get_ranking(limit)
    if cached is not None:
        return cached
    data = await get_ranking(session, limit=limit)
    await cache.set_ranking(limit, data)
    return data


@router.post("/clicks")
@limiter.limit("30/minute")
async def register_click(
    request: Request,
    data: ClickRequest,
    session: AsyncSession = Depends(get_session),
    publisher: RealtimePublisher = Depends(get_publisher),
):
    """Log a visit to an invite link. Unknown codes are accepted and ignored."""
    events = EventBuffer()
    click = await ClickService(session, events).record_click(
        data.referral_code,
        utm_source=data.utm_source,
        utm_medium=data.utm_medium,
        utm_campaign=data.utm_campaign,
    )
    if click is None:
        return {"recorded": False}
    await commit_and_publish(session, events, publisher)
    return {"recorded": True, "click_id": click.id}


@router.get("/ambassadors")
async def public_directory(
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
):
    """Ambassadors shown on the public page, by display_order (cached 5 min)."""
    cached = await cache.get_public_directory()
    if cached is not None:
        return cached
    directory = await AmbassadorService(session).list_public_directory()
    await cache.set_public_directory(directory)
    return directory


@router.get("/ambassadors/{referral_code}")
async def get_public_ambassador(referral_code: str, session: AsyncSession = Depends(get_session)):
    """Public card behind an invite link: name, avatar and tier of an active ambassador."""
    service = AmbassadorService(session)
    ambassador = await service.get_by_code(referral_code)
    if ambassador is None or not ambassador.active:
        raise HTTPException(status_code=404, detail="Embaixadora não encontrada")
    profile = await service.get_profile(ambassador)
    tier = await TierService(session).get_tier_for(ambassador)
    return {
        "referral_code": ambassador.referral_code,
        "full_name": profile.full_name if profile else None,
        "avatar_url": profile.avatar_url if profile else None,
        "tier": tier_to_dict(tier) if tier else None,
        "invite_link": build_invite_link(ambassador.referral_code),
    }
