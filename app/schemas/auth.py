"""
Auth schemas: request bodies and responses for login, OTP, registration,
password change/reset and token refresh.
"""
from pydantic import BaseModel, EmailStr, field_validator
from typing import Optional
import re

from app.schemas.account import AccountOut


def _password_strong(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters")
    return v


class LoginRequest(BaseModel):
    username_login: str  # login handle or email
    password_login: str


class SendOTPRequest(BaseModel):
    email: EmailStr


class VerifyOTPRequest(BaseModel):
    email: EmailStr
    otp: str


class CheckEmailResponse(BaseModel):
    exists: bool
    message: str


class VerifyOTPResponse(BaseModel):
    valid: bool
    message: str


class CompleteRegistrationRequest(BaseModel):
    email: EmailStr
    otp: str
    password: str
    username: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_strong(cls, v: str) -> str:
        return _password_strong(v)

    @field_validator("username")
    @classmethod
    def username_valid(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if len(v) < 3 or len(v) > 50:
            raise ValueError("Username must be between 3 and 50 characters")
        if not re.match(r"^[a-zA-Z0-9_.]+$", v):
            raise ValueError("Username can only contain letters, numbers, dots and underscores")
        return v


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_strong(cls, v: str) -> str:
        return _password_strong(v)


# Confirmation equality is checked by AccountService, not here, so that a
# mismatch surfaces as the domain's validation_error rather than a 422.
class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class ChangeTemporaryPasswordRequest(BaseModel):
    email: EmailStr
    temp_password: str
    new_password: str
    confirm_password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(BaseModel):
    message: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    password_change_required: bool = False
    user: Optional[AccountOut] = None


class MessageResponse(BaseModel):
    message: str
