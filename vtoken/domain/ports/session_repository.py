from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from vtoken.domain.entities import Session


class SessionRepositoryPort(Protocol):
    async def create(
        self,
        user_id: int,
        *,
        user_agent: str | None,
        ip: str | None,
        ttl_seconds: int,
    ) -> tuple[Session, str]:
        """Create a session and return it with the raw token (shown once)."""

    async def find_active_session(
        self, token: str, user_id: int
    ) -> Optional[Session]:
        """Session for the raw token if owned by user_id, unrevoked and unexpired."""

    async def find_by_token(self, token: str) -> Optional[Session]:
        """Session for the raw token regardless of state."""

    async def extend_expiry(self, session_id: int, new_expiry: datetime) -> None:
        """Push expires_at forward."""

    async def revoke(self, session_id: int) -> None:
        """Mark the session revoked."""
