from typing import Annotated, Optional

from fastapi import APIRouter, Cookie, Depends, Request, status
from fastapi.responses import JSONResponse

from vtoken.application.issue_token import IssueRequest, TokenIssuer
from vtoken.application.redeem_link import LinkRedeemer
from vtoken.application.verify_token import Verifier
from vtoken.domain.errors import (
    InvalidSession,
    ResendThrottled,
    SignedTokenError,
    StorageError,
    SubjectRequired,
    TransientError,
    UserNotFound,
)
from vtoken.domain.results import Outcome, VerificationResult
from vtoken.presentation.dependencies import get_issuer, get_link_redeemer, get_verifier
from vtoken.schemas.requests import IssueTokenIn, RedeemLinkIn, VerifyTokenIn
from vtoken.schemas.responses import DecodedLinkOut, IssuedTokenOut, VerificationOut

router = APIRouter(prefix="/verification", tags=["Verification"])

SESSION_COOKIE = "session_token"

OUTCOME_STATUS: dict[Outcome, int] = {
    Outcome.VERIFIED: status.HTTP_200_OK,
    Outcome.CODE_REQUIRED: status.HTTP_400_BAD_REQUEST,
    Outcome.USER_ID_OR_JTI_REQUIRED: status.HTTP_400_BAD_REQUEST,
    Outcome.TOKEN_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    Outcome.NO_ACTIVE_TOKENS: status.HTTP_404_NOT_FOUND,
    Outcome.TOKEN_ALREADY_USED: status.HTTP_409_CONFLICT,
    Outcome.TOKEN_EXPIRED: status.HTTP_410_GONE,
    Outcome.INVALID_CODE: status.HTTP_401_UNAUTHORIZED,
    Outcome.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    Outcome.WRONG_SESSION: status.HTTP_403_FORBIDDEN,
    Outcome.TOO_MANY_ATTEMPTS: status.HTTP_429_TOO_MANY_REQUESTS,
    Outcome.DB_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _failure(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
    )


def _result_response(result: VerificationResult) -> JSONResponse:
    return JSONResponse(
        status_code=OUTCOME_STATUS[result.outcome],
        content=VerificationOut(**result.as_payload()).model_dump(exclude_none=True),
    )


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


@router.post(
    "/tokens",
    status_code=status.HTTP_201_CREATED,
    response_model=IssuedTokenOut,
    response_model_exclude_none=True,
)
async def post_issue_token(
    body: IssueTokenIn,
    request: Request,
    issuer: Annotated[TokenIssuer, Depends(get_issuer)],
    session_cookie: Annotated[Optional[str], Cookie(alias=SESSION_COOKIE)] = None,
):
    try:
        issued = await issuer.issue(
            IssueRequest(
                user_id=body.user_id,
                phone=body.phone,
                username=body.username,
                channel=body.channel,
                ttl_seconds=body.ttl,
                origin=body.origin,
                session_token=body.session_token or session_cookie,
                issuer_ip=_client_ip(request),
                issuer_user_agent=request.headers.get("user-agent"),
            )
        )
    except SubjectRequired as e:
        return _failure(status.HTTP_400_BAD_REQUEST, e.code)
    except UserNotFound as e:
        return _failure(status.HTTP_404_NOT_FOUND, e.code)
    except InvalidSession as e:
        return _failure(status.HTTP_401_UNAUTHORIZED, e.code)
    except ResendThrottled as e:
        return _failure(
            status.HTTP_429_TOO_MANY_REQUESTS,
            e.code,
            retry_after=e.retry_after,
        )
    except (TransientError, StorageError) as e:
        return _failure(status.HTTP_503_SERVICE_UNAVAILABLE, e.code)

    return IssuedTokenOut(
        user_id=issued.user_id,
        jti=issued.jti,
        channel=issued.channel,
        expires_at=issued.expires_at,
        expires_at_local=issued.expires_at_local,
        user_tz=issued.user_tz,
        session_linked=issued.session_linked,
        delivery=issued.delivery,
        code=issued.code,
        link=issued.link,
    )


@router.post("/verify", response_model=VerificationOut)
async def post_verify(
    body: VerifyTokenIn,
    request: Request,
    verifier: Annotated[Verifier, Depends(get_verifier)],
    session_cookie: Annotated[Optional[str], Cookie(alias=SESSION_COOKIE)] = None,
):
    result = await verifier.verify(
        code=body.code,
        jti=body.jti,
        user_id=body.user_id,
        channel=body.channel,
        session_token=body.session_token or session_cookie,
        verifier_ip=_client_ip(request),
        verifier_user_agent=request.headers.get("user-agent"),
    )
    return _result_response(result)


@router.post(
    "/link",
    response_model=VerificationOut,
    responses={200: {"model": DecodedLinkOut, "description": "decode_only=true"}},
)
async def post_redeem_link(
    body: RedeemLinkIn,
    request: Request,
    redeemer: Annotated[LinkRedeemer, Depends(get_link_redeemer)],
    session_cookie: Annotated[Optional[str], Cookie(alias=SESSION_COOKIE)] = None,
):
    if body.decode_only:
        try:
            payload = redeemer.decode(body.token)
        except SignedTokenError:
            return _result_response(VerificationResult.failure(Outcome.INVALID_TOKEN))
        decoded = DecodedLinkOut(
            user_id=payload.user_id, jti=payload.jti, code=payload.code
        )
        return JSONResponse(content=decoded.model_dump())

    result = await redeemer.redeem(
        body.token,
        session_token=body.session_token or session_cookie,
        verifier_ip=_client_ip(request),
        verifier_user_agent=request.headers.get("user-agent"),
    )
    return _result_response(result)
