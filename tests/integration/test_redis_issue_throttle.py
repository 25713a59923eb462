from uuid import uuid4

import pytest

from vtoken.infrastructure.redis_cache.issue_throttle import RedisIssueThrottle


@pytest.mark.asyncio
async def test_second_acquire_in_window_is_refused(redis_client):
    throttle = RedisIssueThrottle(redis_client, key_prefix=f"test-{uuid4()}:")
    subject = "user:1"

    assert await throttle.acquire(subject, "code", 30) == 0
    retry_after = await throttle.acquire(subject, "code", 30)
    assert 0 < retry_after <= 30

    # other channel has its own window
    assert await throttle.acquire(subject, "whatsapp", 30) == 0

    await throttle.release(subject, "code")
    assert await throttle.acquire(subject, "code", 30) == 0

    await throttle.release(subject, "code")
    await throttle.release(subject, "whatsapp")


@pytest.mark.asyncio
async def test_zero_window_disables_throttle(redis_client):
    throttle = RedisIssueThrottle(redis_client, key_prefix=f"test-{uuid4()}:")
    assert await throttle.acquire("phone:+33600000000", "code", 0) == 0
    assert await throttle.acquire("phone:+33600000000", "code", 0) == 0
