from __future__ import annotations

from typing import Optional, Protocol

from vtoken.domain.entities import VerificationToken


class VerificationStorePort(Protocol):
    """
    Append-only store of verification tokens.
    Mutable columns: used, used_at, attempts, verifier_ip, verifier_user_agent.
    """

    async def find_by_jti(self, jti: str) -> Optional[VerificationToken]:
        """Return the single row for `jti`, or None."""

    async def find_active_by_user(
        self, user_id: int, channel: str | None = None
    ) -> list[VerificationToken]:
        """
        Unused, unexpired rows for the user, newest first.
        channel=None matches every channel.
        """

    async def supersede_unused(self, user_id: int, channel: str) -> int:
        """Mark every unused row for (user_id, channel) as used. Return the count."""

    async def insert(self, token: VerificationToken) -> int:
        """Persist a new row and return its id."""

    async def mark_used_if_unused(
        self,
        token_id: int,
        verifier_ip: str | None,
        verifier_user_agent: str | None,
    ) -> int:
        """
        Consume the row in one statement guarded by `used = false`.
        Return affected rows; 0 means a concurrent request consumed it first.
        """

    async def increment_attempts_and_maybe_block(
        self, token_id: int, max_attempts: int
    ) -> Optional[tuple[int, bool]]:
        """
        Atomically bump attempts and set used when the limit is reached.
        Return (new_attempts, blocked), or None when the row was already used.
        """
