from __future__ import annotations

from typing import Optional
from psycopg_pool import AsyncConnectionPool
from vtoken.settings import get_settings

_pool: Optional[AsyncConnectionPool] = None


def _add_connect_timeout(dsn: str, seconds: int = 3) -> str:
    if "connect_timeout=" in dsn:
        return dsn
    sep = "&" if "?" in dsn else "?"
    return f"{dsn}{sep}connect_timeout={seconds}"


def get_pool() -> AsyncConnectionPool:
    """
    Create (if needed) and return the global pool WITHOUT opening it.
    Every connection carries a server-side statement_timeout so no query can
    hang a request indefinitely.
    """
    global _pool
    if _pool is None:
        settings = get_settings()
        _pool = AsyncConnectionPool(
            _add_connect_timeout(settings.database_url),
            min_size=1,
            max_size=10,
            timeout=5,
            kwargs={
                "options": f"-c statement_timeout={int(settings.db_statement_timeout_ms)}"
            },
            open=False,  # created closed; caller decides when to open
        )
    return _pool



async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
