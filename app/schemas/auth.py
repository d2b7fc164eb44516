from datetime import datetime

from pydantic import BaseModel, field_validator


# ─── Request Schemas ──────────────────────────────────────────────────────────
class RefreshTokenRequest(BaseModel):
    refreshToken: str

    @field_validator("refreshToken")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Refresh token cannot be blank")
        return v.strip()


class LogoutRequest(RefreshTokenRequest):
    pass


# ─── Response Schemas ─────────────────────────────────────────────────────────
class AuthTokenResponse(BaseModel):
    accessToken:           str
    refreshToken:          str
    tokenType:             str = "Bearer"
    accessTokenExpiresAt:  datetime
    refreshTokenExpiresAt: datetime


class UserProfileResponse(BaseModel):
    id:          int
    email:       str
    displayName: str | None = None
    isActive:    bool

    model_config = {"from_attributes": True}
