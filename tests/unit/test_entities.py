from datetime import datetime, timedelta, timezone

import pytest

from vtoken.domain.entities import User, VerificationToken

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


def _token(**kwargs) -> VerificationToken:
    defaults = dict(
        jti="j" * 32,
        user_id=1,
        channel="code",
        token_hash="h",
        issued_at=NOW,
        expires_at=NOW + timedelta(minutes=15),
    )
    defaults.update(kwargs)
    return VerificationToken(**defaults)


def test_user_phone_normalized_and_defaults():
    u = User(id=None, username="a", phone="  ")
    assert u.phone is None
    assert u.timezone == "UTC"
    assert u.is_active is False


def test_unknown_channel_rejected():
    with pytest.raises(ValueError):
        _token(channel="email")


def test_expiry_boundary_is_exclusive():
    t = _token()
    assert not t.is_expired(t.expires_at)
    assert t.is_expired(t.expires_at + timedelta(seconds=1))


def test_binding_flag():
    assert _token().is_bound is False
    assert _token(session_binding=7).is_bound is True

