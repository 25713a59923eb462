import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Cookie, Depends, Security
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from vtoken.domain.errors import StorageError, TransientError
from vtoken.domain.ports.unit_of_work import UnitOfWorkPort
from vtoken.presentation.dependencies import get_uow
from vtoken.presentation.routers.v1.verification import SESSION_COOKIE
from vtoken.schemas.responses import OkOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])
bearer_scheme = HTTPBearer(auto_error=False)


@router.post("/logout", response_model=OkOut)
async def post_logout(
    uow: Annotated[UnitOfWorkPort, Depends(get_uow)],
    auth: Annotated[
        Optional[HTTPAuthorizationCredentials], Security(bearer_scheme)
    ] = None,
    session_cookie: Annotated[Optional[str], Cookie(alias=SESSION_COOKIE)] = None,
):
    # Logout never reveals whether the token existed.
    token = (auth.credentials if auth else None) or session_cookie
    if token:
        try:
            async with uow as tx:
                session = await tx.sessions.find_by_token(token)
                if session and not session.revoked:
                    await tx.sessions.revoke(session.id)
                    await tx.commit()
                    logger.info(
                        "session revoked",
                        extra={"session_id": session.id, "user_id": session.user_id},
                    )
        except (TransientError, StorageError):
            logger.warning("logout could not reach the database", exc_info=True)

    response = JSONResponse(content=OkOut().model_dump())
    response.delete_cookie(SESSION_COOKIE)
    return response
