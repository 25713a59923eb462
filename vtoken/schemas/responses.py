from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class IssuedTokenOut(BaseModel):
    success: Literal[True] = True
    user_id: int
    jti: str
    channel: str
    expires_at: datetime
    expires_at_local: str = Field(..., description="Expiry in the user's timezone")
    user_tz: str
    session_linked: bool
    delivery: Literal["queued", "skipped"]
    code: Optional[str] = Field(None, description="Only in development mode")
    link: Optional[str] = Field(None, description="Only in development mode")


class VerificationOut(BaseModel):
    success: bool
    message: str
    user_id: Optional[int] = None
    attempts: Optional[int] = None


class DecodedLinkOut(BaseModel):
    success: Literal[True] = True
    message: Literal["decoded"] = "decoded"
    user_id: int
    jti: str
    code: str


class OkOut(BaseModel):
    success: Literal[True] = True
