from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import psycopg
from psycopg.rows import dict_row

from vtoken.domain.entities import Session
from vtoken.domain.ports.session_repository import SessionRepositoryPort
from vtoken.domain.services import hash_session_token

_COLUMNS = "id, user_id, token_hash, user_agent, ip, created_at, expires_at, revoked"


def _to_session(row: dict) -> Session:
    return Session(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        token_hash=str(row["token_hash"]),
        user_agent=row["user_agent"],
        ip=row["ip"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
        revoked=bool(row["revoked"]),
    )


class PgSessionRepository(SessionRepositoryPort):
    """
    Browser sessions. Only the SHA-256 of the raw token is stored; lookups hash the
    presented token first, so a leaked table cannot be replayed as cookies.
    """

    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    async def create(
        self,
        user_id: int,
        *,
        user_agent: str | None,
        ip: str | None,
        ttl_seconds: int,
    ) -> tuple[Session, str]:
        raw = secrets.token_hex(32)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        sql = f"""
        INSERT INTO user_sessions (user_id, token_hash, user_agent, ip, expires_at)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING {_COLUMNS}
        """
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                sql, (user_id, hash_session_token(raw), user_agent, ip, expires_at)
            )
            row = await cur.fetchone()
        if not row:
            raise RuntimeError("insert into user_sessions returned no row")
        return _to_session(row), raw

    async def find_active_session(
        self, token: str, user_id: int
    ) -> Optional[Session]:
        sql = f"""
        SELECT {_COLUMNS}
        FROM user_sessions
        WHERE token_hash = %s AND user_id = %s
          AND revoked = false AND expires_at > now()
        """
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql, (hash_session_token(token), user_id))
            row = await cur.fetchone()
        return _to_session(row) if row else None

    async def find_by_token(self, token: str) -> Optional[Session]:
        sql = f"SELECT {_COLUMNS} FROM user_sessions WHERE token_hash = %s"
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql, (hash_session_token(token),))
            row = await cur.fetchone()
        return _to_session(row) if row else None

    async def extend_expiry(self, session_id: int, new_expiry: datetime) -> None:
        # never shortens a session
        sql = """
        UPDATE user_sessions
        SET expires_at = GREATEST(expires_at, %s)
        WHERE id = %s AND revoked = false
        """
        async with self._conn.cursor() as cur:
            await cur.execute(sql, (new_expiry, session_id))

    async def revoke(self, session_id: int) -> None:
        async with self._conn.cursor() as cur:
            await cur.execute(
                "UPDATE user_sessions SET revoked = true WHERE id = %s", (session_id,)
            )
