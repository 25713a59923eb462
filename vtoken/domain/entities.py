from dataclasses import dataclass
from datetime import datetime

CHANNELS: tuple[str, ...] = ("code", "link", "whatsapp")


@dataclass
class User:
    id: int | None = None
    username: str | None = None
    phone: str | None = None
    timezone: str = "UTC"
    is_active: bool = False

    def __post_init__(self):
        if self.phone is not None:
            self.phone = self.phone.strip() or None


@dataclass
class Session:
    id: int
    user_id: int
    token_hash: str
    expires_at: datetime
    user_agent: str | None = None
    ip: str | None = None
    created_at: datetime | None = None
    revoked: bool = False


@dataclass
class VerificationToken:
    jti: str
    user_id: int
    channel: str
    token_hash: str
    issued_at: datetime
    expires_at: datetime
    id: int | None = None
    expires_at_local: str | None = None
    user_tz: str = "UTC"
    used: bool = False
    used_at: datetime | None = None
    attempts: int = 0
    origin: str | None = None
    phone: str | None = None
    issuer_ip: str | None = None
    issuer_user_agent: str | None = None
    verifier_ip: str | None = None
    verifier_user_agent: str | None = None
    session_binding: int | None = None

    def __post_init__(self):
        if self.channel not in CHANNELS:
            raise ValueError(f"unknown channel: {self.channel}")

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    @property
    def is_bound(self) -> bool:
        return self.session_binding is not None
