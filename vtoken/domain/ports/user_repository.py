from __future__ import annotations

from typing import Optional, Protocol

from vtoken.domain.entities import User


class UserRepositoryPort(Protocol):
    async def find_by_id(self, user_id: int) -> Optional[User]:
        """Return None if not found."""

    async def find_by_phone(self, phone: str) -> Optional[User]:
        """Return None if not found."""

    async def create_minimal(self, username: str, phone: str) -> User:
        """Create an inactive user with just a username and phone."""

    async def set_active(self, user_id: int) -> bool:
        """Mark user as active. Return False when the user does not exist."""
