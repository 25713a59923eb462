import asyncio
from datetime import timedelta

import pytest

from vtoken.application.issue_token import IssueRequest
from vtoken.domain.entities import VerificationToken
from vtoken.domain.results import Outcome
from vtoken.domain.services import utcnow
from tests.conftest import FIXED_CODE
from tests.fakes import FakeUoW


async def _issue(issuer, user_id, **kwargs):
    return await issuer.issue(IssueRequest(user_id=user_id, **kwargs))


@pytest.mark.asyncio
async def test_correct_code_by_jti_activates_user_and_stores(issuer, verifier, db, user):
    issued = await _issue(issuer, user.id)

    result = await verifier.verify(
        code=FIXED_CODE, jti=issued.jti, verifier_ip="10.0.0.9", verifier_user_agent="ua"
    )

    assert result.success is True
    assert result.as_payload() == {
        "success": True,
        "message": "verified",
        "user_id": user.id,
    }
    row = db.token(issued.jti)
    assert row.used is True and row.used_at is not None
    assert row.verifier_ip == "10.0.0.9"
    assert row.verifier_user_agent == "ua"
    assert db.users[user.id].is_active is True
    assert all(store.is_active for store in db.stores)


@pytest.mark.asyncio
async def test_second_verification_reports_already_used(issuer, verifier, user):
    issued = await _issue(issuer, user.id)
    await verifier.verify(code=FIXED_CODE, jti=issued.jti)

    again = await verifier.verify(code=FIXED_CODE, jti=issued.jti)

    assert again.outcome is Outcome.TOKEN_ALREADY_USED
    assert again.as_payload() == {"success": False, "message": "token_already_used"}


@pytest.mark.asyncio
async def test_correct_code_by_user_id(issuer, verifier, db, user):
    issued = await _issue(issuer, user.id)

    result = await verifier.verify(code=FIXED_CODE, user_id=user.id)

    assert result.outcome is Outcome.VERIFIED
    assert result.jti == issued.jti
    assert db.token(issued.jti).used is True


@pytest.mark.asyncio
async def test_missing_code_and_subject(verifier):
    assert (await verifier.verify(code="  ", jti="abc")).outcome is Outcome.CODE_REQUIRED
    assert (await verifier.verify(code=None, user_id=1)).outcome is Outcome.CODE_REQUIRED
    assert (
        await verifier.verify(code="123456")
    ).outcome is Outcome.USER_ID_OR_JTI_REQUIRED


@pytest.mark.asyncio
async def test_unknown_jti(verifier):
    result = await verifier.verify(code="123456", jti="f" * 32)
    assert result.outcome is Outcome.TOKEN_NOT_FOUND


@pytest.mark.asyncio
async def test_jti_of_another_user_is_not_found(issuer, verifier, db, user):
    issued = await _issue(issuer, user.id)
    other = db.add_user(username="other")

    result = await verifier.verify(code=FIXED_CODE, jti=issued.jti, user_id=other.id)

    assert result.outcome is Outcome.TOKEN_NOT_FOUND
    assert db.token(issued.jti).used is False


@pytest.mark.asyncio
async def test_user_without_tokens(verifier, user):
    result = await verifier.verify(code="123456", user_id=user.id)
    assert result.outcome is Outcome.NO_ACTIVE_TOKENS


@pytest.mark.asyncio
async def test_wrong_code_counts_attempt(issuer, verifier, db, user):
    issued = await _issue(issuer, user.id)

    result = await verifier.verify(code="000000", jti=issued.jti)

    assert result.outcome is Outcome.INVALID_CODE
    assert result.as_payload() == {
        "success": False,
        "message": "invalid_code",
        "attempts": 1,
    }
    assert db.token(issued.jti).attempts == 1
    assert db.users[user.id].is_active is False


@pytest.mark.asyncio
async def test_fifth_wrong_code_blocks_the_token(issuer, verifier, db, user):
    issued = await _issue(issuer, user.id)

    results = [
        await verifier.verify(code="000000", jti=issued.jti) for _ in range(5)
    ]

    assert [r.outcome for r in results[:4]] == [Outcome.INVALID_CODE] * 4
    assert [r.attempts for r in results] == [1, 2, 3, 4, 5]
    assert results[4].outcome is Outcome.TOO_MANY_ATTEMPTS
    assert db.token(issued.jti).used is True

    late = await verifier.verify(code=FIXED_CODE, jti=issued.jti)
    assert late.outcome is Outcome.TOKEN_ALREADY_USED
    assert db.users[user.id].is_active is False


@pytest.mark.asyncio
async def test_wrong_code_by_user_id_charges_newest_row(issuer, verifier, db, user):
    older = await _issue(issuer, user.id, channel="code")
    newer = await _issue(issuer, user.id, channel="whatsapp")
    db.token(newer.jti).issued_at = db.token(older.jti).issued_at + timedelta(seconds=1)

    result = await verifier.verify(code="000000", user_id=user.id)

    assert result.outcome is Outcome.INVALID_CODE
    assert db.token(newer.jti).attempts == 1
    assert db.token(older.jti).attempts == 0


@pytest.mark.asyncio
async def test_expired_token(verifier, db, user):
    now = utcnow()
    db.tokens.append(
        VerificationToken(
            id=1,
            jti="a" * 32,
            user_id=user.id,
            channel="code",
            token_hash=f"plain${FIXED_CODE}",
            issued_at=now - timedelta(minutes=20),
            expires_at=now - timedelta(minutes=5),
        )
    )

    wrong = await verifier.verify(code="000000", jti="a" * 32)
    right = await verifier.verify(code=FIXED_CODE, jti="a" * 32)
    by_user = await verifier.verify(code="000000", user_id=user.id)

    assert wrong.outcome is Outcome.TOKEN_EXPIRED
    assert right.outcome is Outcome.TOKEN_EXPIRED
    assert db.token("a" * 32).attempts == 0
    assert db.token("a" * 32).used is False
    assert db.users[user.id].is_active is False
    assert by_user.attempts is None


@pytest.mark.asyncio
async def test_superseded_code_is_refused(issuer, throttle, verifier, monkeypatch, db, user):
    from vtoken.domain import services as domain_services

    first = await _issue(issuer, user.id)
    throttle.held.clear()
    monkeypatch.setattr(domain_services, "generate_6digit_code", lambda: "777777")
    second = await _issue(issuer, user.id)

    stale = await verifier.verify(code=FIXED_CODE, jti=first.jti)
    assert stale.outcome is Outcome.TOKEN_ALREADY_USED

    by_user = await verifier.verify(code=FIXED_CODE, user_id=user.id)
    assert by_user.outcome is Outcome.INVALID_CODE

    fresh = await verifier.verify(code="777777", jti=second.jti)
    assert fresh.outcome is Outcome.VERIFIED


@pytest.mark.asyncio
async def test_bound_token_requires_same_session(issuer, verifier, uow, db, user):
    session, raw = await uow.sessions.create(user.id, ttl_seconds=3600)
    _, other_raw = await uow.sessions.create(user.id, ttl_seconds=3600)
    issued = await _issue(issuer, user.id, session_token=raw)
    before = db.sessions[session.id].expires_at

    missing = await verifier.verify(code=FIXED_CODE, jti=issued.jti)
    other = await verifier.verify(code=FIXED_CODE, jti=issued.jti, session_token=other_raw)
    assert missing.outcome is Outcome.WRONG_SESSION
    assert other.outcome is Outcome.WRONG_SESSION
    assert db.token(issued.jti).attempts == 0

    ok = await verifier.verify(code=FIXED_CODE, jti=issued.jti, session_token=raw)
    assert ok.outcome is Outcome.VERIFIED
    assert db.sessions[session.id].expires_at > before + timedelta(days=29)


@pytest.mark.asyncio
async def test_bound_token_by_user_id_with_wrong_session(issuer, verifier, uow, user):
    _, raw = await uow.sessions.create(user.id, ttl_seconds=3600)
    await _issue(issuer, user.id, session_token=raw)

    result = await verifier.verify(code=FIXED_CODE, user_id=user.id)

    assert result.outcome is Outcome.WRONG_SESSION


@pytest.mark.asyncio
async def test_revoked_session_cannot_redeem(issuer, verifier, uow, user):
    session, raw = await uow.sessions.create(user.id, ttl_seconds=3600)
    issued = await _issue(issuer, user.id, session_token=raw)
    await uow.sessions.revoke(session.id)

    result = await verifier.verify(code=FIXED_CODE, jti=issued.jti, session_token=raw)

    assert result.outcome is Outcome.WRONG_SESSION


@pytest.mark.asyncio
async def test_concurrent_redemption_succeeds_once(issuer, make_verifier, db, user):
    issued = await _issue(issuer, user.id)
    first = make_verifier(uow=FakeUoW(db))
    second = make_verifier(uow=FakeUoW(db))

    results = await asyncio.gather(
        first.verify(code=FIXED_CODE, jti=issued.jti),
        second.verify(code=FIXED_CODE, jti=issued.jti),
    )

    outcomes = sorted(r.outcome.value for r in results)
    assert outcomes == ["token_already_used", "verified"]


@pytest.mark.asyncio
async def test_transient_read_error_is_retried_once(issuer, make_verifier, db, user):
    issued = await _issue(issuer, user.id)
    flaky = FakeUoW(db, fail_enters=1)

    result = await make_verifier(uow=flaky).verify(code=FIXED_CODE, jti=issued.jti)

    assert result.outcome is Outcome.VERIFIED
    assert flaky.enters == 3  # failed read, retried read, consume


@pytest.mark.asyncio
async def test_persistent_database_error(issuer, make_verifier, db, user):
    issued = await _issue(issuer, user.id)
    down = FakeUoW(db, fail_enters=5)

    result = await make_verifier(uow=down).verify(code=FIXED_CODE, jti=issued.jti)

    assert result.outcome is Outcome.DB_ERROR
    assert result.as_payload() == {"success": False, "message": "db_error"}
    assert db.token(issued.jti).used is False


@pytest.mark.asyncio
async def test_failed_activation_leaves_token_unused(issuer, verifier, db, user):
    issued = await _issue(issuer, user.id)
    del db.users[user.id]

    result = await verifier.verify(code=FIXED_CODE, jti=issued.jti)

    assert result.outcome is Outcome.DB_ERROR
    assert result.as_payload() == {"success": False, "message": "db_error"}
    assert db.token(issued.jti).used is False
