from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, TypeVar

from vtoken.application.activation_service import ActivationService
from vtoken.application.session_binder import SessionBinder
from vtoken.domain.entities import VerificationToken
from vtoken.domain.errors import DomainError, StorageError, TransientError
from vtoken.domain.ports.code_hasher import CodeHasherPort
from vtoken.domain.ports.unit_of_work import UnitOfWorkPort
from vtoken.domain.results import Outcome, VerificationResult
from vtoken.domain.services import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Verifier:
    """
    Checks a submitted code against a stored token and consumes it on success.

    Reads may be retried on transient database errors. Writes never are: the
    consume step is a single guarded statement, and a repeated attempt counter
    bump would charge the caller twice.
    """

    def __init__(
        self,
        *,
        uow: UnitOfWorkPort,
        hasher: CodeHasherPort,
        binder: SessionBinder,
        activation: ActivationService,
        max_attempts: int = 5,
        read_retries: int = 1,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow = uow
        self._hasher = hasher
        self._binder = binder
        self._activation = activation
        self._max_attempts = max_attempts
        self._read_retries = read_retries
        self._clock = clock

    async def verify(
        self,
        *,
        code: str | None,
        jti: str | None = None,
        user_id: int | None = None,
        session_token: str | None = None,
        channel: str | None = None,
        verifier_ip: str | None = None,
        verifier_user_agent: str | None = None,
    ) -> VerificationResult:
        code = (code or "").strip()
        jti = (jti or "").strip() or None
        if not code:
            return VerificationResult.failure(Outcome.CODE_REQUIRED)
        if not jti and not user_id:
            return VerificationResult.failure(Outcome.USER_ID_OR_JTI_REQUIRED)

        try:
            if jti:
                result = await self._verify_by_jti(
                    code, jti, user_id, session_token, verifier_ip, verifier_user_agent
                )
            else:
                result = await self._verify_by_user(
                    code, user_id, channel, session_token, verifier_ip, verifier_user_agent
                )
        except (TransientError, StorageError):
            logger.warning(
                "verification aborted by database error",
                exc_info=True,
                extra={"jti": jti, "user_id": user_id},
            )
            result = VerificationResult.failure(Outcome.DB_ERROR, jti=jti)

        logger.info(
            "verification attempt",
            extra={
                "outcome": result.outcome.value,
                "jti": result.jti or jti,
                "user_id": result.user_id or user_id,
                "attempts": result.attempts,
                "ip": verifier_ip,
            },
        )
        return result

    async def _verify_by_jti(
        self,
        code: str,
        jti: str,
        user_id: int | None,
        session_token: str | None,
        verifier_ip: str | None,
        verifier_user_agent: str | None,
    ) -> VerificationResult:
        async def load(tx: UnitOfWorkPort) -> tuple[VerificationToken | None, bool]:
            row = await tx.tokens.find_by_jti(jti)
            if row is None or row.used or row.is_expired(self._clock()):
                return row, True
            return row, await self._binder.validate(tx.sessions, row, session_token)

        row, session_ok = await self._read(load)

        if row is None or (user_id and row.user_id != user_id):
            return VerificationResult.failure(Outcome.TOKEN_NOT_FOUND, jti=jti)
        if row.used:
            return VerificationResult.failure(Outcome.TOKEN_ALREADY_USED, jti=jti)
        if row.is_expired(self._clock()):
            return VerificationResult.failure(Outcome.TOKEN_EXPIRED, jti=jti)
        if not session_ok:
            return VerificationResult.failure(Outcome.WRONG_SESSION, jti=jti)

        if await self._matches(code, row):
            return await self._consume(row, verifier_ip, verifier_user_agent)
        return await self._record_miss(row)

    async def _verify_by_user(
        self,
        code: str,
        user_id: int,
        channel: str | None,
        session_token: str | None,
        verifier_ip: str | None,
        verifier_user_agent: str | None,
    ) -> VerificationResult:
        async def load(tx: UnitOfWorkPort) -> list[tuple[VerificationToken, bool]]:
            rows = await tx.tokens.find_active_by_user(user_id, channel)
            return [
                (row, await self._binder.validate(tx.sessions, row, session_token))
                for row in rows
            ]

        candidates = await self._read(load)
        if not candidates:
            return VerificationResult.failure(Outcome.NO_ACTIVE_TOKENS)

        eligible = [row for row, session_ok in candidates if session_ok]
        if not eligible:
            return VerificationResult.failure(Outcome.WRONG_SESSION)
        now = self._clock()
        eligible = [row for row in eligible if not row.is_expired(now)]
        if not eligible:
            return VerificationResult.failure(Outcome.TOKEN_EXPIRED)

        for row in eligible:
            if await self._matches(code, row):
                return await self._consume(row, verifier_ip, verifier_user_agent)
        # the newest eligible row pays for the miss
        return await self._record_miss(eligible[0])

    async def _read(self, load: Callable[[UnitOfWorkPort], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                async with self._uow as tx:
                    return await load(tx)
            except TransientError:
                if attempt >= self._read_retries:
                    raise
                attempt += 1
                logger.info("retrying token read", extra={"attempt": attempt})

    async def _matches(self, code: str, row: VerificationToken) -> bool:
        return await asyncio.to_thread(self._hasher.compare, code, row.token_hash)

    async def _consume(
        self,
        row: VerificationToken,
        verifier_ip: str | None,
        verifier_user_agent: str | None,
    ) -> VerificationResult:
        try:
            async with self._uow as tx:
                affected = await tx.tokens.mark_used_if_unused(
                    row.id, verifier_ip, verifier_user_agent
                )
                if affected == 0:
                    return VerificationResult.failure(
                        Outcome.TOKEN_ALREADY_USED, jti=row.jti
                    )
                await self._activation.activate(tx, row.user_id)
                await self._binder.extend(tx.sessions, row)
                await tx.commit()
        except TransientError:
            raise
        except DomainError:
            # rolled back: the token stays unused and can be redeemed again
            logger.error(
                "token consume failed",
                exc_info=True,
                extra={"jti": row.jti, "user_id": row.user_id},
            )
            return VerificationResult.failure(Outcome.DB_ERROR, jti=row.jti)
        return VerificationResult(
            outcome=Outcome.VERIFIED, user_id=row.user_id, jti=row.jti
        )

    async def _record_miss(self, row: VerificationToken) -> VerificationResult:
        async with self._uow as tx:
            bumped = await tx.tokens.increment_attempts_and_maybe_block(
                row.id, self._max_attempts
            )
            await tx.commit()
        if bumped is None:
            return VerificationResult.failure(Outcome.TOKEN_ALREADY_USED, jti=row.jti)
        attempts, blocked = bumped
        if blocked:
            return VerificationResult.failure(
                Outcome.TOO_MANY_ATTEMPTS, attempts=attempts, jti=row.jti
            )
        return VerificationResult.failure(
            Outcome.INVALID_CODE, attempts=attempts, jti=row.jti
        )
