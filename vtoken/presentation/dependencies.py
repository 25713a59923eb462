from typing import Annotated

from fastapi import Depends

from vtoken.application.activation_service import ActivationService
from vtoken.application.issue_token import TokenIssuer
from vtoken.application.redeem_link import LinkRedeemer
from vtoken.application.session_binder import SessionBinder
from vtoken.application.verify_token import Verifier
from vtoken.domain.ports.code_hasher import CodeHasherPort
from vtoken.domain.ports.issue_throttle import IssueThrottlePort
from vtoken.domain.ports.unit_of_work import UnitOfWorkPort
from vtoken.infrastructure.db.pool import get_pool
from vtoken.infrastructure.db.uow import PgUnitOfWork
from vtoken.infrastructure.redis_cache.issue_throttle import RedisIssueThrottle
from vtoken.infrastructure.redis_cache.pool import get_redis
from vtoken.infrastructure.security.code_hasher import BcryptCodeHasher
from vtoken.infrastructure.security.signed_token import SignedTokenCodec
from vtoken.settings import Settings, get_settings


def get_uow() -> UnitOfWorkPort:
    return PgUnitOfWork(get_pool())


def get_code_hasher() -> CodeHasherPort:
    return BcryptCodeHasher()


def get_codec(settings: Annotated[Settings, Depends(get_settings)]) -> SignedTokenCodec:
    return SignedTokenCodec(settings.signing_secret)


def get_throttle() -> IssueThrottlePort:
    return RedisIssueThrottle(get_redis())


def get_session_binder(
    settings: Annotated[Settings, Depends(get_settings)],
) -> SessionBinder:
    return SessionBinder(extension_seconds=settings.session_extension_seconds)


def get_issuer(
    settings: Annotated[Settings, Depends(get_settings)],
    uow: Annotated[UnitOfWorkPort, Depends(get_uow)],
    hasher: Annotated[CodeHasherPort, Depends(get_code_hasher)],
    codec: Annotated[SignedTokenCodec, Depends(get_codec)],
    binder: Annotated[SessionBinder, Depends(get_session_binder)],
    throttle: Annotated[IssueThrottlePort, Depends(get_throttle)],
) -> TokenIssuer:
    return TokenIssuer(
        uow=uow,
        hasher=hasher,
        codec=codec,
        binder=binder,
        throttle=throttle,
        link_base_url=settings.link_base_url,
        default_ttl_seconds=settings.token_ttl_seconds,
        min_ttl_seconds=settings.min_token_ttl_seconds,
        throttle_seconds=settings.resend_throttle_seconds,
        expose_dev_codes=settings.expose_dev_codes,
    )


def get_verifier(
    settings: Annotated[Settings, Depends(get_settings)],
    uow: Annotated[UnitOfWorkPort, Depends(get_uow)],
    hasher: Annotated[CodeHasherPort, Depends(get_code_hasher)],
    binder: Annotated[SessionBinder, Depends(get_session_binder)],
) -> Verifier:
    return Verifier(
        uow=uow,
        hasher=hasher,
        binder=binder,
        activation=ActivationService(),
        max_attempts=settings.code_attempts,
        read_retries=settings.db_read_retries,
    )


def get_link_redeemer(
    codec: Annotated[SignedTokenCodec, Depends(get_codec)],
    verifier: Annotated[Verifier, Depends(get_verifier)],
) -> LinkRedeemer:
    return LinkRedeemer(codec=codec, verifier=verifier)
