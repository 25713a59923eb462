class DomainError(Exception):
    """Base class for all domain-level errors."""

    code = "domain_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class ValidationError(DomainError):
    """The request is malformed or misses a required field."""

    code = "validation_error"


class NotFoundError(DomainError):
    """A referenced record does not exist."""

    code = "not_found"


class StateError(DomainError):
    """The record exists but is in a state that forbids the operation."""

    code = "invalid_state"


class SecurityError(DomainError):
    """Signature, session or ownership checks failed."""

    code = "security_error"


class TransientError(DomainError):
    """Database or network trouble; the outcome of the operation is unknown."""

    code = "db_error"


class StorageError(DomainError):
    """The database refused a statement (constraint, schema or data error)."""

    code = "db_error"


class RateLimitError(DomainError):
    """The caller exceeded an attempt or frequency budget."""

    code = "rate_limited"


class SubjectRequired(ValidationError):
    code = "user_id_or_phone_required"


class UserNotFound(NotFoundError):
    """No user matches the lookup criteria (id or phone)."""

    code = "user_not_found"


class InvalidSession(SecurityError):
    """Session token is unknown, revoked, expired or owned by someone else."""

    code = "invalid_or_expired_session"


class ResendThrottled(RateLimitError):
    code = "resend_throttled"

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"{self.code}: retry in {retry_after}s")
        self.retry_after = retry_after


class SignedTokenError(SecurityError):
    """A signed link could not be decoded.

    Subclasses record the reason for logs; callers only ever see ``invalid_token``.
    """

    code = "invalid_token"
    reason = "invalid"


class MalformedToken(SignedTokenError):
    reason = "malformed"


class InvalidSignature(SignedTokenError):
    reason = "invalid_signature"


class TokenExpired(SignedTokenError):
    reason = "expired"
