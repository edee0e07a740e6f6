"""
Redis-backed agent presence.

Each agent gets a hash ``presence:user:<id>`` with ``online`` and
``updated_at`` fields; online agents are also members of ``presence:online``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from redis.asyncio import ConnectionPool, Redis

from omniconnect.domain.interfaces.presence_repository import IPresenceRepository

log = logging.getLogger("RedisPresence")

KEY_PREFIX = "presence:user:"
ONLINE_SET = "presence:online"


class RedisPresenceRepository(IPresenceRepository):
    """Presence repository over a ``redis.asyncio`` client."""

    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str, *, max_connections: int = 64) -> RedisPresenceRepository:
        log.info(f"Initialising Redis presence pool ({url})")
        pool = ConnectionPool.from_url(
            url,
            decode_responses=True,
            encoding="utf-8",
            max_connections=max_connections,
        )
        return cls(Redis(connection_pool=pool))

    async def set_presence(self, user_id: int, is_online: bool) -> None:
        key = f"{KEY_PREFIX}{user_id}"
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(
                key,
                mapping={
                    "online": "1" if is_online else "0",
                    "updated_at": datetime.now(UTC).isoformat(),
                },
            )
            if is_online:
                pipe.sadd(ONLINE_SET, str(user_id))
            else:
                pipe.srem(ONLINE_SET, str(user_id))
            await pipe.execute()

    async def get_presence(self, user_id: int) -> bool | None:
        value = await self.client.hget(f"{KEY_PREFIX}{user_id}", "online")
        if value is None:
            return None
        return value == "1"

    async def online_users(self) -> set[int]:
        return {int(member) for member in await self.client.smembers(ONLINE_SET)}

    async def close(self) -> None:
        await self.client.aclose()
