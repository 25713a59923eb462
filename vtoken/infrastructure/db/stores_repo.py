from __future__ import annotations

import psycopg

from vtoken.domain.ports.store_repository import StoreRepositoryPort


class PgStoreRepository(StoreRepositoryPort):
    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    async def activate_all_inactive_for_owner(self, user_id: int) -> int:
        sql = """
        UPDATE stores
        SET is_active = true, updated_at = now()
        WHERE owner_user_id = %s AND is_active = false
        """
        async with self._conn.cursor() as cur:
            await cur.execute(sql, (user_id,))
            return cur.rowcount
