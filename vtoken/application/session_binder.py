from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from vtoken.domain.entities import Session, VerificationToken
from vtoken.domain.errors import InvalidSession
from vtoken.domain.ports.session_repository import SessionRepositoryPort
from vtoken.domain.services import utcnow

logger = logging.getLogger(__name__)


class SessionBinder:
    """
    Ties a token to the browser session that requested it.

    The row keeps the session id, never the raw cookie. A bound token is only
    redeemable from that exact session: another valid session of the same user
    is still the wrong browser.
    """

    def __init__(
        self,
        *,
        extension_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._extension = timedelta(seconds=extension_seconds)
        self._clock = clock

    async def bind(
        self,
        sessions: SessionRepositoryPort,
        token: VerificationToken,
        session_token: str,
    ) -> Session:
        session = await sessions.find_active_session(session_token, token.user_id)
        if session is None:
            logger.info(
                "session binding rejected",
                extra={"user_id": token.user_id, "jti": token.jti},
            )
            raise InvalidSession()
        token.session_binding = session.id
        return session

    async def validate(
        self,
        sessions: SessionRepositoryPort,
        token: VerificationToken,
        supplied_session_token: str | None,
    ) -> bool:
        if not token.is_bound:
            return True
        if not supplied_session_token:
            return False
        session = await sessions.find_active_session(
            supplied_session_token, token.user_id
        )
        return session is not None and session.id == token.session_binding

    async def extend(
        self, sessions: SessionRepositoryPort, token: VerificationToken
    ) -> None:
        if token.session_binding is None:
            return
        await sessions.extend_expiry(
            token.session_binding, self._clock() + self._extension
        )
