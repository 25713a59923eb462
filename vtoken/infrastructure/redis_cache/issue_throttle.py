from __future__ import annotations

from redis.asyncio import Redis
from redis.exceptions import RedisError

from vtoken.domain.errors import TransientError
from vtoken.domain.ports.issue_throttle import IssueThrottlePort


class RedisIssueThrottle(IssueThrottlePort):
    """
    One issuance per (subject, channel) per window.

    SET NX EX claims the slot atomically, so two tabs pressing "resend" at the
    same moment cannot both mint a code.
    """

    def __init__(self, redis: Redis, *, key_prefix: str = "issue:") -> None:
        self._redis = redis
        self._prefix = key_prefix

    def _key(self, subject: str, channel: str) -> str:
        return f"{self._prefix}{channel}:{subject}"

    async def acquire(self, subject: str, channel: str, window_seconds: int) -> int:
        if window_seconds <= 0:
            return 0
        key = self._key(subject, channel)
        try:
            if await self._redis.set(key, "1", nx=True, ex=window_seconds):
                return 0
            ttl = await self._redis.ttl(key)
        except RedisError as e:
            raise TransientError(f"throttle unavailable: {e}") from e
        # -2: expired between SET and TTL, -1: no expiry (should not happen)
        return ttl if ttl > 0 else 1

    async def release(self, subject: str, channel: str) -> None:
        try:
            await self._redis.delete(self._key(subject, channel))
        except RedisError as e:
            raise TransientError(f"throttle unavailable: {e}") from e
