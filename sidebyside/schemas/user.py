# sidebyside/schemas/user.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import Optional

class UserResponse(BaseModel):
    """User"""
    id: str
    email: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class AuthModeResponse(BaseModel):
    auth_mode: str
    is_anonymous: bool

class MagicLinkRequest(BaseModel):
    """Magic link request"""
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    return_to: str = Field(default="/", alias="returnTo")

class MagicLinkResponse(BaseModel):
    message: str
    expires_at: Optional[datetime] = None
    access_token: Optional[str] = None
    user: Optional[UserResponse] = None
    return_to: Optional[str] = None

class VerifyTokenRequest(BaseModel):
    token: str = Field(..., min_length=1)

class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")

class TokenResponse(BaseModel):
    """Access token + user"""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
    is_anonymous: bool = False
    refresh_token: Optional[str] = None  # Figma plugin only, it has no cookie jar

class FigmaCodeResponse(BaseModel):
    code: str
    expires_at: datetime

class FigmaVerifyRequest(BaseModel):
    code: Optional[str] = None

class CleanupResponse(BaseModel):
    message: str
    deleted_sessions: int
    deleted_magic_tokens: int
    deleted_figma_codes: int
    trimmed_sessions: int = 0
    notified_votings: int = 0

class CleanupStatusResponse(BaseModel):
    is_running: bool
    last_cleanup: Optional[datetime] = None
    next_cleanup: Optional[datetime] = None
