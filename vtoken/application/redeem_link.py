from __future__ import annotations

import logging

from vtoken.application.verify_token import Verifier
from vtoken.domain.errors import SignedTokenError
from vtoken.domain.results import Outcome, VerificationResult
from vtoken.infrastructure.security.signed_token import LinkPayload, SignedTokenCodec

logger = logging.getLogger(__name__)


class LinkRedeemer:
    """Turns a signed link back into a verification attempt."""

    def __init__(self, *, codec: SignedTokenCodec, verifier: Verifier) -> None:
        self._codec = codec
        self._verifier = verifier

    def decode(self, token: str) -> LinkPayload:
        try:
            return self._codec.decode(token)
        except SignedTokenError as exc:
            logger.info("signed link rejected", extra={"reason": exc.reason})
            raise

    async def redeem(
        self,
        token: str,
        *,
        session_token: str | None = None,
        verifier_ip: str | None = None,
        verifier_user_agent: str | None = None,
    ) -> VerificationResult:
        try:
            payload = self.decode(token)
        except SignedTokenError:
            return VerificationResult.failure(Outcome.INVALID_TOKEN)
        return await self._verifier.verify(
            code=payload.code,
            jti=payload.jti,
            user_id=payload.user_id,
            session_token=session_token,
            verifier_ip=verifier_ip,
            verifier_user_agent=verifier_user_agent,
        )
