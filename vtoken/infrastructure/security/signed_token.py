"""Signed verification links.

The link payload is ``{user_id, jti, iat, exp, code, session_token}`` encoded as an
HS256 JWT, which is URL-safe and signs every claim including ``exp``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote

import jwt

from vtoken.domain.errors import InvalidSignature, MalformedToken, TokenExpired

ALGORITHM = "HS256"
REQUIRED_CLAIMS = ("user_id", "jti", "iat", "exp", "code")


@dataclass(frozen=True)
class LinkPayload:
    user_id: int
    jti: str
    iat: int
    exp: int
    code: str
    session_token: Optional[str] = None

    def to_claims(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "jti": self.jti,
            "iat": self.iat,
            "exp": self.exp,
            "code": self.code,
            "session_token": self.session_token,
        }

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "LinkPayload":
        try:
            return cls(
                user_id=int(claims["user_id"]),
                jti=str(claims["jti"]),
                iat=int(claims["iat"]),
                exp=int(claims["exp"]),
                code=str(claims["code"]),
                session_token=claims.get("session_token"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedToken("payload is missing required claims") from exc


class SignedTokenCodec:
    def __init__(self, secret: str, *, leeway_seconds: int = 0) -> None:
        if not secret:
            raise ValueError("signing secret must not be empty")
        self._secret = secret
        self._leeway = leeway_seconds

    def encode(self, payload: LinkPayload) -> str:
        return jwt.encode(payload.to_claims(), self._secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> LinkPayload:
        """
        Verify signature and expiry and return the payload.

        Raises MalformedToken, InvalidSignature or TokenExpired. Decoding has no side
        effects, so the same call serves both redemption and decode-only pre-fill.
        """
        if not token or token.count(".") != 2:
            raise MalformedToken("not a compact JWS")
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                leeway=self._leeway,
                options={"require": list(REQUIRED_CLAIMS)},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except jwt.InvalidSignatureError as exc:
            raise InvalidSignature() from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedToken(str(exc)) from exc
        return LinkPayload.from_claims(claims)

    def build_link(self, base_url: str, payload: LinkPayload) -> str:
        sep = "&" if "?" in base_url else "?"
        return f"{base_url}{sep}token={quote(self.encode(payload), safe='')}"


def link_payload(
    *,
    user_id: int,
    jti: str,
    issued_at: datetime,
    expires_at: datetime,
    code: str,
    session_reference: Optional[str] = None,
) -> LinkPayload:
    return LinkPayload(
        user_id=user_id,
        jti=jti,
        iat=int(issued_at.astimezone(timezone.utc).timestamp()),
        exp=int(expires_at.astimezone(timezone.utc).timestamp()),
        code=code,
        session_token=session_reference,
    )
