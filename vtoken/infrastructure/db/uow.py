from __future__ import annotations

import logging
from typing import Any, Optional, Type

import psycopg
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from vtoken.domain.errors import StorageError, TransientError
from vtoken.domain.ports.unit_of_work import UnitOfWorkPort
from vtoken.infrastructure.db.outbox_repo import PgOutboxRepository
from vtoken.infrastructure.db.sessions_repo import PgSessionRepository
from vtoken.infrastructure.db.stores_repo import PgStoreRepository
from vtoken.infrastructure.db.users_repo import PgUserRepository
from vtoken.infrastructure.db.verification_tokens_repo import PgVerificationStore

logger = logging.getLogger(__name__)

# Failures that say nothing about the data itself: network, pool exhaustion,
# statement_timeout (QueryCanceled is an OperationalError).
TRANSIENT_ERRORS = (psycopg.OperationalError, PoolTimeout)


class PgUnitOfWork(UnitOfWorkPort):
    def __init__(self, pool: AsyncConnectionPool) -> None:
        self._pool = pool
        self._conn_cm: Optional[Any] = None
        self._conn: Optional[psycopg.AsyncConnection] = None
        self._committed: bool = False
        self.users: PgUserRepository
        self.stores: PgStoreRepository
        self.sessions: PgSessionRepository
        self.tokens: PgVerificationStore
        self.outbox: PgOutboxRepository

    async def __aenter__(self) -> "PgUnitOfWork":
        self._conn_cm = self._pool.connection()
        try:
            self._conn = await self._conn_cm.__aenter__()
        except TRANSIENT_ERRORS as e:
            self._conn_cm = None
            raise TransientError(f"database unavailable: {e}") from e
        self.users = PgUserRepository(self._conn)
        self.stores = PgStoreRepository(self._conn)
        self.sessions = PgSessionRepository(self._conn)
        self.tokens = PgVerificationStore(self._conn)
        self.outbox = PgOutboxRepository(self._conn)
        self._committed = False
        return self

    async def __aexit__(
        self,
        exc_type: Type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: Any,
    ) -> None:
        try:
            if self._conn:
                if exc_value or not self._committed:
                    try:
                        await self._conn.rollback()
                    except psycopg.Error:
                        logger.warning("rollback failed", exc_info=True)
        finally:
            if self._conn_cm:
                await self._conn_cm.__aexit__(exc_type, exc_value, traceback)
            self._conn = None
            self._conn_cm = None
            self._committed = False
        if isinstance(exc_value, TRANSIENT_ERRORS):
            raise TransientError(str(exc_value)) from exc_value
        if isinstance(exc_value, psycopg.Error):
            raise StorageError(str(exc_value)) from exc_value

    async def commit(self) -> None:
        if not self._conn:
            raise RuntimeError("No connection available to commit")
        await self._conn.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self._conn:
            await self._conn.rollback()
        self._committed = False
