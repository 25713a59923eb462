from datetime import datetime, timedelta, timezone

import pytest

from vtoken.application.issue_token import IssueRequest
from vtoken.domain.ports.text_message_port import TOPIC_SEND_TEXT
from vtoken.infrastructure.outbox.dispatcher import (
    OutboxDispatcher,
    RetryPolicy,
    UnknownTopic,
    _is_stale,
)
from tests.fakes import FakeTextOK


def test_retry_delay_doubles_until_cap():
    policy = RetryPolicy(base=2, max_delay=60)
    assert [policy.compute_delay(n) for n in range(7)] == [2, 4, 8, 16, 32, 60, 60]


def test_stale_when_code_already_expired():
    now = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
    past = (now - timedelta(seconds=1)).isoformat()
    future = (now + timedelta(minutes=10)).isoformat()
    assert _is_stale({"expires_at": past}, now=now) is True
    assert _is_stale({"expires_at": future}, now=now) is False


def test_payload_without_usable_expiry_is_sent():
    assert _is_stale({}) is False
    assert _is_stale({"expires_at": "tomorrow"}) is False


@pytest.mark.asyncio
async def test_dispatch_routes_text_topic():
    text = FakeTextOK()
    dispatcher = OutboxDispatcher(pool=None, text_adapter=text)

    await dispatcher._dispatch(
        "verification.send_text",
        {"phone": "+33612345678", "message": "hello"},
        idempotency_key="jti-9",
    )

    assert text.calls == [
        {"phone": "+33612345678", "message": "hello", "idempotency_key": "jti-9"}
    ]


@pytest.mark.asyncio
async def test_unknown_topic_fails():
    dispatcher = OutboxDispatcher(pool=None, text_adapter=FakeTextOK())
    with pytest.raises(UnknownTopic):
        await dispatcher._dispatch("user.deleted", {}, idempotency_key=None)


@pytest.mark.asyncio
async def test_issued_delivery_is_routed_by_the_dispatcher(issuer, db, user):
    issued = await issuer.issue(IssueRequest(user_id=user.id))
    topic, payload, idem = db.outbox[0]
    text = FakeTextOK()

    await OutboxDispatcher(pool=None, text_adapter=text)._dispatch(
        topic, payload, idempotency_key=idem
    )

    assert topic == TOPIC_SEND_TEXT
    assert text.calls[0]["phone"] == user.phone
    assert text.calls[0]["idempotency_key"] == issued.jti
