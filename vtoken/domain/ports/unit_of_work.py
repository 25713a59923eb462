from __future__ import annotations

from dataclasses import dataclass
from types import TracebackType
from typing import Protocol, Type

from vtoken.domain.ports.outbox_repository import OutboxRepositoryPort
from vtoken.domain.ports.session_repository import SessionRepositoryPort
from vtoken.domain.ports.store_repository import StoreRepositoryPort
from vtoken.domain.ports.user_repository import UserRepositoryPort
from vtoken.domain.ports.verification_store import VerificationStorePort


@dataclass
class UnitOfWorkPort(Protocol):
    """
    Transaction boundary.

    Usage:
        async with uow as tx:
            if await tx.tokens.mark_used_if_unused(row.id, ip, ua) == 1:
                await tx.users.set_active(row.user_id)
                await tx.commit()

    Leaving the block without commit() rolls back. Database timeouts and
    connection failures surface as TransientError.
    """

    users: UserRepositoryPort
    stores: StoreRepositoryPort
    sessions: SessionRepositoryPort
    tokens: VerificationStorePort
    outbox: OutboxRepositoryPort

    async def __aenter__(self) -> "UnitOfWorkPort":
        """Begin a new transaction."""

    async def __aexit__(
        self,
        exc_type: Type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """End the transaction, rolling back unless committed."""

    async def commit(self) -> None:
        """Commit the transaction."""

    async def rollback(self) -> None:
        """Rollback the transaction."""
