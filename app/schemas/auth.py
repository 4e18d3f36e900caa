from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

USERNAME_PATTERN = r"^[A-Za-z0-9_-]+$"


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=5)
    username: str | None = Field(default=None, min_length=3, pattern=USERNAME_PATTERN)


class AccountUpdate(BaseModel):
    email: EmailStr
    username: str | None = Field(default=None, min_length=3, pattern=USERNAME_PATTERN)
    password: str | None = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    username: str | None = None
    is_active: bool
    last_login_at: datetime | None = None
