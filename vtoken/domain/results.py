from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from vtoken.domain.errors import (
    DomainError,
    NotFoundError,
    RateLimitError,
    SecurityError,
    StateError,
    TransientError,
    ValidationError,
)


class Outcome(str, Enum):
    VERIFIED = "verified"
    CODE_REQUIRED = "code_required"
    USER_ID_OR_JTI_REQUIRED = "user_id_or_jti_required"
    TOKEN_NOT_FOUND = "token_not_found"
    TOKEN_ALREADY_USED = "token_already_used"
    TOKEN_EXPIRED = "token_expired"
    INVALID_CODE = "invalid_code"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    NO_ACTIVE_TOKENS = "no_active_tokens"
    WRONG_SESSION = "wrong_session"
    INVALID_TOKEN = "invalid_token"
    DB_ERROR = "db_error"


# Error kind behind every failed outcome; lets callers decide retry vs. new code.
OUTCOME_KIND: dict[Outcome, type[DomainError]] = {
    Outcome.CODE_REQUIRED: ValidationError,
    Outcome.USER_ID_OR_JTI_REQUIRED: ValidationError,
    Outcome.TOKEN_NOT_FOUND: NotFoundError,
    Outcome.NO_ACTIVE_TOKENS: NotFoundError,
    Outcome.TOKEN_ALREADY_USED: StateError,
    Outcome.TOKEN_EXPIRED: StateError,
    Outcome.INVALID_CODE: SecurityError,
    Outcome.WRONG_SESSION: SecurityError,
    Outcome.INVALID_TOKEN: SecurityError,
    Outcome.TOO_MANY_ATTEMPTS: RateLimitError,
    Outcome.DB_ERROR: TransientError,
}


@dataclass(frozen=True)
class VerificationResult:
    outcome: Outcome
    user_id: int | None = None
    jti: str | None = None
    attempts: int | None = None

    @property
    def success(self) -> bool:
        return self.outcome is Outcome.VERIFIED

    @property
    def kind(self) -> type[DomainError] | None:
        return OUTCOME_KIND.get(self.outcome)

    def as_payload(self) -> dict[str, Any]:
        if self.success:
            return {
                "success": True,
                "message": self.outcome.value,
                "user_id": self.user_id,
            }
        payload: dict[str, Any] = {"success": False, "message": self.outcome.value}
        if self.attempts is not None:
            payload["attempts"] = self.attempts
        return payload

    @classmethod
    def failure(
        cls, outcome: Outcome, *, attempts: int | None = None, jti: str | None = None
    ) -> "VerificationResult":
        return cls(outcome=outcome, attempts=attempts, jti=jti)


@dataclass(frozen=True)
class IssuedToken:
    user_id: int
    jti: str
    channel: str
    expires_at: datetime
    expires_at_local: str
    user_tz: str
    session_linked: bool
    delivery: Literal["queued", "skipped"]
    # only populated when dev code exposure is switched on
    code: str | None = None
    link: str | None = None
