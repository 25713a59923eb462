from datetime import datetime, timedelta, timezone

import pytest

from vtoken.application.session_binder import SessionBinder
from vtoken.domain.entities import VerificationToken
from vtoken.domain.errors import InvalidSession

FROZEN = datetime.now(timezone.utc).replace(microsecond=0)


def _token(user_id: int) -> VerificationToken:
    return VerificationToken(
        jti="d" * 32,
        user_id=user_id,
        channel="code",
        token_hash="h",
        issued_at=FROZEN,
        expires_at=FROZEN + timedelta(minutes=15),
    )


@pytest.fixture()
def frozen_binder():
    return SessionBinder(extension_seconds=30 * 86400, clock=lambda: FROZEN)


@pytest.mark.asyncio
async def test_bind_records_session_id(frozen_binder, uow, user):
    session, raw = await uow.sessions.create(user.id, ttl_seconds=60)
    token = _token(user.id)

    bound = await frozen_binder.bind(uow.sessions, token, raw)

    assert bound.id == session.id
    assert token.session_binding == session.id


@pytest.mark.asyncio
async def test_bind_rejects_unknown_token(frozen_binder, uow, user):
    with pytest.raises(InvalidSession):
        await frozen_binder.bind(uow.sessions, _token(user.id), "nope")


@pytest.mark.asyncio
async def test_unbound_token_validates_without_session(frozen_binder, uow, user):
    assert await frozen_binder.validate(uow.sessions, _token(user.id), None) is True


@pytest.mark.asyncio
async def test_validate_requires_exact_session(frozen_binder, uow, user):
    _, raw = await uow.sessions.create(user.id, ttl_seconds=60)
    _, other = await uow.sessions.create(user.id, ttl_seconds=60)
    token = _token(user.id)
    await frozen_binder.bind(uow.sessions, token, raw)

    assert await frozen_binder.validate(uow.sessions, token, raw) is True
    assert await frozen_binder.validate(uow.sessions, token, other) is False
    assert await frozen_binder.validate(uow.sessions, token, None) is False


@pytest.mark.asyncio
async def test_extend_pushes_expiry(frozen_binder, uow, db, user):
    session, raw = await uow.sessions.create(user.id, ttl_seconds=60)
    token = _token(user.id)
    await frozen_binder.bind(uow.sessions, token, raw)

    await frozen_binder.extend(uow.sessions, token)

    assert db.sessions[session.id].expires_at == FROZEN + timedelta(days=30)


@pytest.mark.asyncio
async def test_extend_is_noop_for_unbound(frozen_binder, uow, db, user):
    session, _ = await uow.sessions.create(user.id, ttl_seconds=60)
    before = db.sessions[session.id].expires_at
    await frozen_binder.extend(uow.sessions, _token(user.id))
    assert db.sessions[session.id].expires_at == before
