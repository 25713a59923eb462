import time
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import jwt
import pytest

from vtoken.domain.errors import (
    InvalidSignature,
    MalformedToken,
    SignedTokenError,
    TokenExpired,
)
from vtoken.infrastructure.security.signed_token import (
    LinkPayload,
    SignedTokenCodec,
    link_payload,
)

SECRET = "unit-test-secret-0123456789abcdefgh"


def _payload(**kwargs) -> LinkPayload:
    now = int(time.time())
    defaults = dict(user_id=7, jti="ab" * 16, iat=now, exp=now + 900, code="048213")
    defaults.update(kwargs)
    return LinkPayload(**defaults)


def test_encode_decode_preserves_claims():
    codec = SignedTokenCodec(SECRET)
    payload = _payload(session_token="12")
    assert codec.decode(codec.encode(payload)) == payload


def test_expired_token_rejected():
    codec = SignedTokenCodec(SECRET)
    now = int(time.time())
    token = codec.encode(_payload(iat=now - 1000, exp=now - 100))
    with pytest.raises(TokenExpired) as ei:
        codec.decode(token)
    assert ei.value.reason == "expired"
    assert ei.value.code == "invalid_token"


def test_foreign_signature_rejected():
    token = SignedTokenCodec("another-secret-0123456789abcdefghij").encode(_payload())
    with pytest.raises(InvalidSignature):
        SignedTokenCodec(SECRET).decode(token)


def test_tampered_payload_rejected():
    codec = SignedTokenCodec(SECRET)
    header, _, signature = codec.encode(_payload()).split(".")
    forged_body = codec.encode(_payload(code="999999")).split(".")[1]
    with pytest.raises(InvalidSignature):
        codec.decode(f"{header}.{forged_body}.{signature}")


@pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c", "....", "x.y.z.w"])
def test_malformed_tokens_rejected(token):
    with pytest.raises(MalformedToken):
        SignedTokenCodec(SECRET).decode(token)


def test_missing_claim_rejected():
    now = int(time.time())
    token = jwt.encode(
        {"user_id": 1, "jti": "x", "iat": now, "exp": now + 60},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(SignedTokenError):
        SignedTokenCodec(SECRET).decode(token)


def test_empty_secret_refused():
    with pytest.raises(ValueError):
        SignedTokenCodec("")


def test_build_link_carries_decodable_token():
    codec = SignedTokenCodec(SECRET)
    payload = _payload()
    link = codec.build_link("https://app.test/verify?lang=fr", payload)

    parts = urlsplit(link)
    query = parse_qs(parts.query)
    assert parts.path == "/verify"
    assert query["lang"] == ["fr"]
    assert codec.decode(query["token"][0]) == payload


def test_link_payload_uses_epoch_seconds():
    issued = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
    payload = link_payload(
        user_id=3,
        jti="c" * 32,
        issued_at=issued,
        expires_at=issued + timedelta(minutes=15),
        code="000001",
    )
    assert payload.exp - payload.iat == 900
    assert payload.iat == int(issued.timestamp())
    assert payload.session_token is None
