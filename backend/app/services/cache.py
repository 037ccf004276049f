"""
Redis Cache Service for public program data.
Provides TTL-based caching for the tier table, the leaderboard and the public directory.
"""
import json
from typing import Optional, Any, List
from redis.asyncio import Redis

from backend.app.core.settings import get_settings


class CacheService:
    """Service for caching operations using Redis."""

    _redis: Optional[Redis] = None

    # Default TTL values (in seconds)
    TTL_TIERS = 3600           # 1 hour - tier table is reference data
    TTL_RANKING = 60           # 1 minute - points change with every sale
    TTL_DIRECTORY = 300        # 5 minutes - public directory changes only on admin edits
    TTL_DEFAULT = 300          # 5 minutes - default for other data

    # Cache key prefixes
    KEY_TIERS = "ambassador:tiers:all"
    KEY_RANKING = "ambassador:ranking:{limit}"
    KEY_DIRECTORY = "ambassador:public:directory"

    @classmethod
    async def get_redis(cls) -> Redis:
        """Get or create Redis connection."""
        if cls._redis is None:
            settings = get_settings()
            cls._redis = Redis(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                db=settings.REDIS_DB,
                decode_responses=True
            )
        return cls._redis

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._redis:
            await cls._redis.aclose()
            cls._redis = None

    def __init__(self, redis: Redis):
        self.redis = redis

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        data = await self.redis.get(key)
        if data:
            return json.loads(data)
        return None

    async def set(self, key: str, value: Any, ttl: int = TTL_DEFAULT):
        """Set value in cache with TTL."""
        await self.redis.set(key, json.dumps(value, ensure_ascii=False), ex=ttl)

    async def delete(self, key: str):
        """Delete value from cache."""
        await self.redis.delete(key)

    async def delete_pattern(self, pattern: str):
        """Delete all keys matching pattern."""
        keys = await self.redis.keys(pattern)
        if keys:
            await self.redis.delete(*keys)

    # ----- Convenience methods for program data -----

    async def get_tiers(self) -> Optional[List[dict]]:
        """Get cached tier table."""
        return await self.get(self.KEY_TIERS)

    async def set_tiers(self, tiers: List[dict]):
        """Cache tier table."""
        await self.set(self.KEY_TIERS, tiers, self.TTL_TIERS)

    async def invalidate_tiers(self):
        await self.delete(self.KEY_TIERS)

    async def get_ranking(self, limit: int) -> Optional[List[dict]]:
        """Get cached leaderboard of the given size."""
        return await self.get(self.KEY_RANKING.format(limit=limit))

    async def set_ranking(self, limit: int, ranking: List[dict]):
        await self.set(self.KEY_RANKING.format(limit=limit), ranking, self.TTL_RANKING)

    async def invalidate_ranking(self):
        """Invalidate every cached leaderboard size."""
        await self.delete_pattern("ambassador:ranking:*")

    async def get_public_directory(self) -> Optional[List[dict]]:
        return await self.get(self.KEY_DIRECTORY)

    async def set_public_directory(self, directory: List[dict]):
        await self.set(self.KEY_DIRECTORY, directory, self.TTL_DIRECTORY)

    async def invalidate_public_directory(self):
        await self.delete(self.KEY_DIRECTORY)
