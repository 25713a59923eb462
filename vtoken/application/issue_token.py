from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import vtoken.domain.services as domain_services
from vtoken.application.session_binder import SessionBinder
from vtoken.domain.entities import User, VerificationToken
from vtoken.domain.errors import (
    ResendThrottled,
    SubjectRequired,
    TransientError,
    UserNotFound,
)
from vtoken.domain.ports.code_hasher import CodeHasherPort
from vtoken.domain.ports.issue_throttle import IssueThrottlePort
from vtoken.domain.ports.text_message_port import TOPIC_SEND_TEXT
from vtoken.domain.ports.unit_of_work import UnitOfWorkPort
from vtoken.domain.results import IssuedToken
from vtoken.infrastructure.security.signed_token import SignedTokenCodec, link_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssueRequest:
    user_id: int | None = None
    phone: str | None = None
    username: str | None = None
    channel: str = "code"
    ttl_seconds: int | None = None
    origin: str | None = None
    session_token: str | None = None
    issuer_ip: str | None = None
    issuer_user_agent: str | None = None


def render_message(
    *, code: str, link: str, expires_at_local: str, user_tz: str, bound: bool
) -> str:
    lines = [
        f"Your verification code: {code}",
        f"Valid until {expires_at_local} ({user_tz}).",
        f"Or open: {link}",
    ]
    if bound:
        lines.append("The link only works in the browser you signed up from.")
    return "\n".join(lines)


class TokenIssuer:
    """
    Mints a one-time code for a subject and persists its hash.

    Earlier unused codes for the same (user, channel) are superseded in the same
    transaction. Delivery is only *enqueued* here; the outbox worker sends it, so
    a failing gateway cannot undo an issued token.
    """

    def __init__(
        self,
        *,
        uow: UnitOfWorkPort,
        hasher: CodeHasherPort,
        codec: SignedTokenCodec,
        binder: SessionBinder,
        throttle: IssueThrottlePort,
        link_base_url: str,
        default_ttl_seconds: int = 900,
        min_ttl_seconds: int = 60,
        throttle_seconds: int = 60,
        expose_dev_codes: bool = False,
        clock: Callable[[], datetime] = domain_services.utcnow,
    ) -> None:
        self._uow = uow
        self._hasher = hasher
        self._codec = codec
        self._binder = binder
        self._throttle = throttle
        self._link_base_url = link_base_url
        self._default_ttl = default_ttl_seconds
        self._min_ttl = min_ttl_seconds
        self._throttle_seconds = throttle_seconds
        self._expose_dev_codes = expose_dev_codes
        self._clock = clock

    def effective_ttl(self, requested: int | None) -> int:
        return max(self._min_ttl, requested or self._default_ttl)

    async def issue(self, request: IssueRequest) -> IssuedToken:
        phone = (request.phone or "").strip() or None
        if not request.user_id and not phone:
            raise SubjectRequired()

        ttl = self.effective_ttl(request.ttl_seconds)
        code = domain_services.generate_6digit_code()
        jti = domain_services.generate_jti()
        # bcrypt is CPU bound; keep it off the event loop and outside the transaction
        digest = await asyncio.to_thread(self._hasher.hash, code)

        slot: str | None = None
        try:
            async with self._uow as tx:
                user = await self._resolve_subject(
                    tx, request.user_id, phone, request.username
                )
                # keyed on the resolved user so user_id and phone share one window
                subject = f"user:{user.id}"
                await self._claim_slot(subject, request)
                slot = subject

                superseded = await tx.tokens.supersede_unused(user.id, request.channel)

                issued_at, expires_at = domain_services.expiry_window(
                    ttl, now=self._clock()
                )
                user_tz, expires_at_local = domain_services.format_local_expiry(
                    expires_at, user.timezone
                )
                token = VerificationToken(
                    jti=jti,
                    user_id=user.id,
                    channel=request.channel,
                    token_hash=digest,
                    issued_at=issued_at,
                    expires_at=expires_at,
                    expires_at_local=expires_at_local,
                    user_tz=user_tz,
                    phone=user.phone or phone,
                    issuer_ip=request.issuer_ip,
                    issuer_user_agent=request.issuer_user_agent,
                )
                if request.session_token:
                    await self._binder.bind(tx.sessions, token, request.session_token)
                token.origin = request.origin or (
                    "session_linked" if token.is_bound else "manual_resend"
                )
                await tx.tokens.insert(token)

                link = self._codec.build_link(
                    self._link_base_url,
                    link_payload(
                        user_id=user.id,
                        jti=jti,
                        issued_at=issued_at,
                        expires_at=expires_at,
                        code=code,
                        session_reference=(
                            str(token.session_binding) if token.is_bound else None
                        ),
                    ),
                )

                delivery = "skipped"
                if token.phone:
                    await tx.outbox.enqueue(
                        topic=TOPIC_SEND_TEXT,
                        payload={
                            "phone": token.phone,
                            "jti": jti,
                            "expires_at": expires_at.isoformat(),
                            "message": render_message(
                                code=code,
                                link=link,
                                expires_at_local=expires_at_local,
                                user_tz=user_tz,
                                bound=token.is_bound,
                            ),
                        },
                        idempotency_key=jti,
                    )
                    delivery = "queued"
                await tx.commit()
        except Exception:
            if slot is not None:
                # nothing was persisted; let the caller try again right away
                await self._release_slot(slot, request.channel)
            raise

        logger.info(
            "verification token issued",
            extra={
                "jti": jti,
                "user_id": user.id,
                "channel": request.channel,
                "ip": request.issuer_ip,
                "superseded": superseded,
                "session_linked": token.is_bound,
                "delivery": delivery,
            },
        )
        return IssuedToken(
            user_id=user.id,
            jti=jti,
            channel=request.channel,
            expires_at=expires_at,
            expires_at_local=expires_at_local,
            user_tz=user_tz,
            session_linked=token.is_bound,
            delivery=delivery,
            code=code if self._expose_dev_codes else None,
            link=link if self._expose_dev_codes else None,
        )

    async def _claim_slot(self, subject: str, request: IssueRequest) -> None:
        retry_after = await self._throttle.acquire(
            subject, request.channel, self._throttle_seconds
        )
        if retry_after:
            logger.info(
                "issuance throttled",
                extra={
                    "subject": subject,
                    "channel": request.channel,
                    "ip": request.issuer_ip,
                    "retry_after": retry_after,
                },
            )
            raise ResendThrottled(retry_after)

    async def _release_slot(self, subject: str, channel: str) -> None:
        try:
            await self._throttle.release(subject, channel)
        except TransientError:
            # the slot expires on its own; keep the original error
            logger.warning(
                "throttle release failed",
                exc_info=True,
                extra={"subject": subject, "channel": channel},
            )

    async def _resolve_subject(
        self,
        tx: UnitOfWorkPort,
        user_id: int | None,
        phone: str | None,
        username: str | None,
    ) -> User:
        if user_id:
            user = await tx.users.find_by_id(user_id)
            if user is None:
                raise UserNotFound(f"user {user_id} does not exist")
            return user
        user = await tx.users.find_by_phone(phone)
        if user is None:
            user = await tx.users.create_minimal(
                username or domain_services.generate_username(), phone
            )
            logger.info("user created for phone", extra={"user_id": user.id})
        return user
