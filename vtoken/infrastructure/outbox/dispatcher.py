from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from psycopg import AsyncCursor
from psycopg_pool import AsyncConnectionPool

from vtoken.domain.ports.text_message_port import TOPIC_SEND_TEXT, TextMessagePort

logger = logging.getLogger("vtoken.infrastructure.outbox.dispatcher")


@dataclass(frozen=True)
class RetryPolicy:
    base: int = 2  # base delay (seconds)
    max_delay: int = 60  # cap (seconds)

    def compute_delay(self, attempts: int) -> int:
        # attempts is the *current* number of attempts already made
        # next delay = min(max_delay, base * 2**(attempts))
        delay = self.base * (2**attempts)
        return delay if delay < self.max_delay else self.max_delay


class UnknownTopic(RuntimeError):
    pass


class OutboxDispatcher:
    """
    Polls the outbox table, claims due rows, dispatches them, and marks
    them as dispatched or reschedules for retry on failure.

    A gateway outage delays a message but never touches the token that produced
    it. Messages for codes that expired while waiting are dropped, not sent.
    """

    def __init__(
        self,
        *,
        pool: AsyncConnectionPool,
        text_adapter: TextMessagePort,
        batch_size: int = 10,
        poll_interval: float = 1.0,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.pool = pool
        self.text_adapter = text_adapter
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.retry_policy = retry_policy or RetryPolicy()

    async def run_forever(self) -> None:
        logger.info(
            "outbox dispatcher started",
            extra={"batch_size": self.batch_size, "poll_interval": self.poll_interval},
        )
        while True:
            processed = await self._process_once()
            # simple throttle: if nothing to do, sleep a bit
            if processed == 0:
                await asyncio.sleep(self.poll_interval)

    async def _process_once(self) -> int:
        """
        Single iteration:
        - claim up to batch_size due rows into 'processing'
        - for each, try to dispatch
        - mark dispatched/dropped or reschedule for retry
        Returns number of rows it attempted to process (claimed count).
        """
        batch = await self._claim_due_batch(self.batch_size)
        if not batch:
            return 0

        logger.info("claimed messages", extra={"count": len(batch)})

        for msg in batch:
            msg_id = msg["id"]
            topic = msg["topic"]
            attempts = msg["attempts"]
            payload = msg["payload"] or {}
            logger.info(
                "processing message",
                extra={
                    "id": msg_id,
                    "topic": topic,
                    "attempts": attempts,
                    "jti": payload.get("jti"),
                },
            )
            if _is_stale(payload):
                logger.info(
                    "dropping message for expired token",
                    extra={"id": msg_id, "jti": payload.get("jti")},
                )
                await self._mark_done(msg_id, status="dropped")
                continue
            try:
                await self._dispatch(
                    topic, payload, idempotency_key=msg["idempotency_key"]
                )
            except Exception:  # noqa: BLE001
                # any adapter failure is retried; the token itself is unaffected
                new_attempts = attempts + 1
                delay = self.retry_policy.compute_delay(attempts)
                logger.warning(
                    "dispatch failed; scheduling retry",
                    exc_info=True,
                    extra={
                        "id": msg_id,
                        "topic": topic,
                        "attempts": new_attempts,
                        "retry_in_s": delay,
                    },
                )
                await self._mark_failed(msg_id, new_attempts, delay)
            else:
                await self._mark_done(msg_id, status="dispatched")

        return len(batch)

    async def _dispatch(
        self, topic: str, payload: dict[str, Any], *, idempotency_key: str | None
    ) -> None:
        if topic == TOPIC_SEND_TEXT:
            await self.text_adapter.send_text(
                phone=payload["phone"],
                message=payload["message"],
                idempotency_key=idempotency_key,
            )
            return

        # Unknown topic -> treated as failure to trigger retry path
        raise UnknownTopic(f"unknown topic: {topic}")

    async def _claim_due_batch(self, limit: int) -> list[dict[str, Any]]:
        """
        Atomically move up to `limit` due 'pending' rows into 'processing'
        and return them.
        """
        sql = """
        WITH claimed AS (
            SELECT id
            FROM outbox
            WHERE status = 'pending'
              AND COALESCE(next_attempt_at, NOW()) <= NOW()
            ORDER BY created_at
            FOR UPDATE SKIP LOCKED
            LIMIT %s
        ),
        updated AS (
            UPDATE outbox o
            SET status = 'processing', updated_at = NOW()
            FROM claimed c
            WHERE o.id = c.id
            RETURNING o.id, o.topic, o.payload, o.attempts, o.idempotency_key
        )
        SELECT id, topic, payload, attempts, idempotency_key
        FROM updated
        ORDER BY id;
        """
        async with self.pool.connection() as conn:
            async with conn.transaction():
                async with conn.cursor() as cur:  # type: AsyncCursor
                    await cur.execute(sql, (limit,))
                    rows = await cur.fetchall()

        return [
            {
                "id": r[0],
                "topic": r[1],
                "payload": r[2],
                "attempts": r[3],
                "idempotency_key": r[4],
            }
            for r in rows or ()
        ]

    async def _mark_done(self, msg_id: int, *, status: str) -> None:
        """
        Final state. The message body holds a one-time code, so it is scrubbed.
        """
        sql = """
        UPDATE outbox
        SET status = %s,
            payload = payload - 'message',
            updated_at = NOW()
        WHERE id = %s;
        """
        async with self.pool.connection() as conn:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.execute(sql, (status, msg_id))

    async def _mark_failed(
        self, msg_id: int, attempts: int, delay_seconds: int
    ) -> None:
        """
        Move message back to 'pending', bump attempts, and set a next_attempt_at in the future.
        """
        sql = """
        UPDATE outbox
        SET status = 'pending',
            attempts = %s,
            next_attempt_at = NOW() + make_interval(secs => %s),
            updated_at = NOW()
        WHERE id = %s;
        """
        async with self.pool.connection() as conn:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.execute(sql, (attempts, delay_seconds, msg_id))


def _is_stale(payload: dict[str, Any], now: datetime | None = None) -> bool:
    raw = payload.get("expires_at")
    if not raw:
        return False
    try:
        expires_at = datetime.fromisoformat(raw)
    except (TypeError, ValueError):
        return False
    return (now or datetime.now(timezone.utc)) >= expires_at
