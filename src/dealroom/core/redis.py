"""Redis-backed session state: role preference and the serialized user.

Two keys per user:
- dealroom:role:{user_id}  -- role preference (Issuer/Bookrunner/Investor)
- dealroom:user:{user_id}  -- JSON-serialized SessionUser, refreshed on login
"""

from __future__ import annotations

import redis.asyncio as aioredis
import structlog

from src.dealroom.access.roles import Role, normalize_role, resolve_role_preference
from src.dealroom.config import get_settings
from src.dealroom.schemas.auth import SessionUser

logger = structlog.get_logger(__name__)

ROLE_KEY = "dealroom:role:{user_id}"
USER_KEY = "dealroom:user:{user_id}"

# ── Module-level Redis pool (lazy init) ─────────────────────────────────────

_redis_pool: aioredis.Redis | None = None


def get_redis_pool() -> aioredis.Redis:
    """Get or create the Redis connection pool singleton."""
    global _redis_pool
    if _redis_pool is None:
        settings = get_settings()
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.close()
        _redis_pool = None


# ── Role Preference Store ───────────────────────────────────────────────────


class RolePreferenceStore:
    """Persists each user's role preference and session snapshot.

    Args:
        redis_client: An async Redis client with decode_responses=True.
    """

    def __init__(self, redis_client: aioredis.Redis):
        self._redis = redis_client

    async def get_role(self, user_id: str) -> Role | None:
        stored = await self._redis.get(ROLE_KEY.format(user_id=user_id))
        return normalize_role(stored)

    async def set_role(self, user_id: str, role: Role) -> None:
        await self._redis.set(ROLE_KEY.format(user_id=user_id), role.value)

    async def resolve(
        self,
        user_id: str,
        query_role: str | None,
        default: Role,
    ) -> tuple[Role, str]:
        """Effective role preference and where it came from.

        A valid ``role`` query parameter wins and is persisted.
        """
        stored = await self._redis.get(ROLE_KEY.format(user_id=user_id))
        role, persist = resolve_role_preference(query_role, stored, default)
        if persist:
            await self.set_role(user_id, role)
            return role, "query"
        if normalize_role(stored) is not None:
            return role, "stored"
        return role, "default"

    async def save_user(self, user: SessionUser) -> None:
        settings = get_settings()
        await self._redis.set(
            USER_KEY.format(user_id=user.id),
            user.model_dump_json(),
            ex=settings.SESSION_TTL_SECONDS,
        )

    async def load_user(self, user_id: str) -> SessionUser | None:
        raw = await self._redis.get(USER_KEY.format(user_id=user_id))
        if raw is None:
            return None
        try:
            return SessionUser.model_validate_json(raw)
        except ValueError:
            logger.warning("session.bad_user_snapshot", user_id=user_id)
            return None

    async def clear_user(self, user_id: str) -> None:
        await self._redis.delete(USER_KEY.format(user_id=user_id))


def get_role_store() -> RolePreferenceStore:
    """RolePreferenceStore over the global Redis pool."""
    return RolePreferenceStore(get_redis_pool())
