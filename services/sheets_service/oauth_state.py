"""
Pending OAuth states: random token -> seller id, single use, time boxed.

The state binds Google's redirect back to the seller who started the flow.
Two backings share one interface: an in-process dict for single-instance
deployments and Redis when several API instances sit behind a load balancer
(the callback may land on a different instance than the one that issued it).
"""
import asyncio
import time
from typing import Callable, Protocol

import redis.asyncio as redis
import structlog

from shared.config import settings

logger = structlog.get_logger(__name__)

STATE_TTL_SECONDS = 10 * 60
PURGE_INTERVAL_SECONDS = 5 * 60


class OAuthStateStore(Protocol):
    async def put(self, state: str, seller_id: str, ttl_seconds: int = STATE_TTL_SECONDS) -> None: ...

    async def take_once(self, state: str) -> str | None: ...

    async def purge_expired(self) -> int: ...

    async def close(self) -> None: ...


class InMemoryOAuthStateStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._states: dict[str, tuple[str, float]] = {}
        # Lookup and delete must be one step so a replayed callback can't reuse a state
        self._lock = asyncio.Lock()

    async def put(self, state: str, seller_id: str, ttl_seconds: int = STATE_TTL_SECONDS) -> None:
        async with self._lock:
            self._states[state] = (seller_id, self._clock() + ttl_seconds)

    async def take_once(self, state: str) -> str | None:
        async with self._lock:
            entry = self._states.pop(state, None)
        if entry is None:
            logger.warning("oauth_state_unknown")
            return None
        seller_id, expires_at = entry
        if self._clock() >= expires_at:
            logger.warning("oauth_state_expired", seller_id=seller_id)
            return None
        return seller_id

    async def purge_expired(self) -> int:
        now = self._clock()
        async with self._lock:
            expired = [state for state, (_, expires_at) in self._states.items() if now >= expires_at]
            for state in expired:
                del self._states[state]
        return len(expired)

    async def close(self) -> None:
        self._states.clear()

    def __len__(self) -> int:
        return len(self._states)


class RedisOAuthStateStore:
    KEY_PREFIX = "livey:oauth_state:"

    def __init__(self, client: "redis.Redis"):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisOAuthStateStore":
        return cls(redis.from_url(url, decode_responses=True, socket_timeout=3, socket_connect_timeout=3))

    def _key(self, state: str) -> str:
        return f"{self.KEY_PREFIX}{state}"

    async def put(self, state: str, seller_id: str, ttl_seconds: int = STATE_TTL_SECONDS) -> None:
        await self.client.set(self._key(state), seller_id, ex=ttl_seconds)

    async def take_once(self, state: str) -> str | None:
        # GETDEL is atomic: exactly one racing callback gets the seller id
        seller_id = await self.client.getdel(self._key(state))
        if seller_id is None:
            logger.warning("oauth_state_unknown")
        return seller_id

    async def purge_expired(self) -> int:
        # Redis expires keys on its own
        return 0

    async def close(self) -> None:
        await self.client.aclose()


def build_oauth_state_store() -> OAuthStateStore:
    if settings.OAUTH_STATE_BACKEND == "redis":
        logger.info("oauth_state_store", backend="redis")
        return RedisOAuthStateStore.from_url(settings.REDIS_URL)
    logger.info("oauth_state_store", backend="memory")
    return InMemoryOAuthStateStore()


async def purge_expired_states_periodically(store: OAuthStateStore, interval: float = PURGE_INTERVAL_SECONDS):
    """Background loop started by the app lifespan; cancelled on shutdown."""
    while True:
        await asyncio.sleep(interval)
        try:
            purged = await store.purge_expired()
            if purged:
                logger.info("oauth_states_purged", count=purged)
        except Exception as e:
            logger.error("oauth_state_purge_failed", error=str(e))
