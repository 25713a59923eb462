from typing import Literal, Optional

from pydantic import BaseModel, Field

Channel = Literal["code", "link", "whatsapp"]


class IssueTokenIn(BaseModel):
    user_id: Optional[int] = Field(None, gt=0, description="Existing user to verify")
    phone: Optional[str] = Field(
        None,
        pattern=r"^\+\d{6,15}$",
        description="E.164 phone; creates a minimal user when unknown",
    )
    username: Optional[str] = Field(None, max_length=64)
    channel: Channel = "code"
    ttl: Optional[int] = Field(
        None, gt=0, description="Lifetime in seconds; clamped to the configured minimum"
    )
    origin: Optional[str] = Field(None, max_length=32, description="Free-form tag, e.g. signup")
    session_token: Optional[str] = Field(
        None, description="Bind the code to this browser session"
    )


class VerifyTokenIn(BaseModel):
    # code and subject are optional here so a missing one is reported
    # as a verification outcome instead of a schema error
    user_id: Optional[int] = Field(None, gt=0)
    jti: Optional[str] = Field(None, max_length=64)
    code: Optional[str] = Field(None, max_length=16)
    channel: Optional[Channel] = None
    session_token: Optional[str] = None


class RedeemLinkIn(BaseModel):
    token: str = Field(..., min_length=1, description="Signed token from the link")
    decode_only: bool = Field(
        False, description="Return the payload without consuming anything"
    )
    session_token: Optional[str] = None
