from __future__ import annotations

from typing import Optional, Sequence

import psycopg
from psycopg.rows import dict_row

from vtoken.domain.entities import VerificationToken
from vtoken.domain.ports.verification_store import VerificationStorePort

_COLUMNS = """
    id, jti, user_id, channel, token_hash, issued_at, expires_at, expires_at_local,
    user_tz, used, used_at, attempts, origin, phone, issuer_ip, issuer_user_agent,
    verifier_ip, verifier_user_agent, session_id
"""

# Upper bound on candidates considered when verifying by user_id.
ACTIVE_LOOKUP_LIMIT = 10


def _row_to_token(row: dict) -> VerificationToken:
    return VerificationToken(
        id=int(row["id"]),
        jti=str(row["jti"]),
        user_id=int(row["user_id"]),
        channel=str(row["channel"]),
        token_hash=str(row["token_hash"]),
        issued_at=row["issued_at"],
        expires_at=row["expires_at"],
        expires_at_local=row["expires_at_local"],
        user_tz=row["user_tz"] or "UTC",
        used=bool(row["used"]),
        used_at=row["used_at"],
        attempts=int(row["attempts"] or 0),
        origin=row["origin"],
        phone=row["phone"],
        issuer_ip=row["issuer_ip"],
        issuer_user_agent=row["issuer_user_agent"],
        verifier_ip=row["verifier_ip"],
        verifier_user_agent=row["verifier_user_agent"],
        session_binding=row["session_id"],
    )


class PgVerificationStore(VerificationStorePort):
    """
    Postgres implementation of the verification token store.

    NOTE:
    - Bound to an *active async connection* supplied by the UoW; never commits.
    - Rows are append-only. State changes are single guarded UPDATE statements so
      concurrent requests race inside Postgres, not in Python.
    """

    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    async def find_by_jti(self, jti: str) -> Optional[VerificationToken]:
        sql = f"SELECT {_COLUMNS} FROM verification_tokens WHERE jti = %s"
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql, (jti,))
            row = await cur.fetchone()
        return _row_to_token(row) if row else None

    async def find_active_by_user(
        self, user_id: int, channel: str | None = None
    ) -> list[VerificationToken]:
        sql = f"""
        SELECT {_COLUMNS}
        FROM verification_tokens
        WHERE user_id = %(user_id)s
          AND used = false
          AND expires_at > now()
          AND (%(channel)s::text IS NULL OR channel = %(channel)s::text)
        ORDER BY issued_at DESC, id DESC
        LIMIT %(limit)s
        """
        params = {"user_id": user_id, "channel": channel, "limit": ACTIVE_LOOKUP_LIMIT}
        async with self._conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(sql, params)
            rows: Sequence[dict] = await cur.fetchall()
        return [_row_to_token(r) for r in rows]

    async def supersede_unused(self, user_id: int, channel: str) -> int:
        sql = """
        UPDATE verification_tokens
        SET used = true
        WHERE user_id = %s AND channel = %s AND used = false
        """
        async with self._conn.cursor() as cur:
            await cur.execute(sql, (user_id, channel))
            return cur.rowcount

    async def insert(self, token: VerificationToken) -> int:
        sql = """
        INSERT INTO verification_tokens (
            jti, user_id, channel, token_hash, issued_at, expires_at, expires_at_local,
            user_tz, origin, phone, issuer_ip, issuer_user_agent, session_id
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """
        async with self._conn.cursor() as cur:
            await cur.execute(
                sql,
                (
                    token.jti,
                    token.user_id,
                    token.channel,
                    token.token_hash,
                    token.issued_at,
                    token.expires_at,
                    token.expires_at_local,
                    token.user_tz,
                    token.origin,
                    token.phone,
                    token.issuer_ip,
                    token.issuer_user_agent,
                    token.session_binding,
                ),
            )
            row = await cur.fetchone()
        if not row:
            raise RuntimeError("insert into verification_tokens returned no id")
        token.id = int(row[0])
        return token.id

    async def mark_used_if_unused(
        self,
        token_id: int,
        verifier_ip: str | None,
        verifier_user_agent: str | None,
    ) -> int:
        sql = """
        UPDATE verification_tokens
        SET used = true,
            used_at = now(),
            verifier_ip = %s,
            verifier_user_agent = %s
        WHERE id = %s AND used = false
        """
        async with self._conn.cursor() as cur:
            await cur.execute(sql, (verifier_ip, verifier_user_agent, token_id))
            return cur.rowcount

    async def increment_attempts_and_maybe_block(
        self, token_id: int, max_attempts: int
    ) -> Optional[tuple[int, bool]]:
        # SET expressions see the pre-update row; RETURNING sees the new one.
        sql = """
        UPDATE verification_tokens
        SET attempts = attempts + 1,
            used = (attempts + 1 >= %s)
        WHERE id = %s AND used = false
        RETURNING attempts, used
        """
        async with self._conn.cursor() as cur:
            await cur.execute(sql, (max_attempts, token_id))
            row = await cur.fetchone()
        if not row:
            return None
        return int(row[0]), bool(row[1])
