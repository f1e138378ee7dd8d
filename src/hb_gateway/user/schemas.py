"""Pydantic request/response schemas for hb_gateway.

Routers wrap every response in ApiResponse.
"""

import re

from pydantic import BaseModel, EmailStr, Field, field_validator

# bcrypt ignores everything past 72 bytes
PASSWORD_MAX_LENGTH = 72


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=64, pattern=r"^[a-zA-Z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=PASSWORD_MAX_LENGTH)
    referral_code: str | None = Field(None, max_length=16, description="Referrer's code")

    @field_validator("password")
    @classmethod
    def password_complexity(cls, v: str) -> str:
        if len(v.encode("utf-8")) > PASSWORD_MAX_LENGTH:
            raise ValueError(f"Password must be at most {PASSWORD_MAX_LENGTH} bytes")
        missing = [
            label
            for pattern, label in (
                (r"[A-Z]", "an uppercase letter"),
                (r"[a-z]", "a lowercase letter"),
                (r"\d", "a digit"),
            )
            if not re.search(pattern, v)
        ]
        if missing:
            raise ValueError("Password must contain " + ", ".join(missing))
        return v

    @field_validator("referral_code")
    @classmethod
    def normalize_referral_code(cls, v: str | None) -> str | None:
        """Codes are stored upper-case; blank means no referrer."""
        if v is None or not v.strip():
            return None
        return v.strip().upper()


class LoginRequest(BaseModel):
    username: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class UserInfo(BaseModel):
    user_id: str
    username: str
    email: str
    role: str
    referral_code: str
    balance_cents: int


class RegisterResponse(BaseModel):
    user_id: str
    username: str
    email: str
    referral_code: str
    created_at: str


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserInfo


class RefreshResponse(BaseModel):
    access_token: str
    expires_in: int
