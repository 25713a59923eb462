from __future__ import annotations

from typing import Optional

import psycopg

from vtoken.domain.entities import User
from vtoken.domain.ports.user_repository import UserRepositoryPort

_SELECT = "SELECT id, username, phone, timezone, is_active FROM users"


def _to_user(row: tuple) -> User:
    uid, username, phone, tz, is_active = row
    return User(
        id=int(uid),
        username=username,
        phone=phone,
        timezone=tz or "UTC",
        is_active=bool(is_active),
    )


class PgUserRepository(UserRepositoryPort):
    """
    Postgres implementation of UserRepositoryPort.

    NOTE:
    - This repo is constructed with an *active async connection* supplied by the UoW.
    - It does not commit; the UnitOfWork controls the transaction boundary.
    """

    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    async def find_by_id(self, user_id: int) -> Optional[User]:
        async with self._conn.cursor() as cur:
            await cur.execute(f"{_SELECT} WHERE id = %s", (user_id,))
            row = await cur.fetchone()
        return _to_user(row) if row else None

    async def find_by_phone(self, phone: str) -> Optional[User]:
        async with self._conn.cursor() as cur:
            await cur.execute(f"{_SELECT} WHERE phone = TRIM(%s)", (phone,))
            row = await cur.fetchone()
        return _to_user(row) if row else None

    async def create_minimal(self, username: str, phone: str) -> User:
        # Two concurrent registrations for one phone must converge on one user.
        sql = """
        WITH ins AS (
        INSERT INTO users (username, phone, is_active)
        VALUES (%s, TRIM(%s), false)
        ON CONFLICT (phone) DO NOTHING
        RETURNING id, username, phone, timezone, is_active
        )
        SELECT id, username, phone, timezone, is_active FROM ins
        UNION ALL
        SELECT id, username, phone, timezone, is_active
        FROM users
        WHERE phone = TRIM(%s) AND NOT EXISTS (SELECT 1 FROM ins)
        LIMIT 1;
        """
        async with self._conn.cursor() as cur:
            await cur.execute(sql, (username, phone, phone))
            row = await cur.fetchone()

        if not row:
            raise RuntimeError("create_minimal returned no row")
        return _to_user(row)

    async def set_active(self, user_id: int) -> bool:
        sql = """
        UPDATE users
        SET is_active = true, updated_at = now()
        WHERE id = %s
        """
        async with self._conn.cursor() as cur:
            await cur.execute(sql, (user_id,))
            return cur.rowcount == 1
