"""
Auth router: login, token refresh and password change.

Login (direct, no OTP):
  POST /auth/login → validate handle/email + password → tokens
  An account still on its temporary password gets tokens too, flagged with
  password_change_required so the client can route to the change form.

Password change:
  POST /auth/change-password           → bearer token + current password
  POST /auth/change-password-new-user  → email + temporary password, no token

Registration and forgot-password live in routers/register.py.
"""
from fastapi import APIRouter, Depends, Request

from app.core.dependencies import get_account_service, get_current_account_id, get_current_claims
from app.core.rate_limiter import limiter
from app.schemas.account import AccountOut
from app.schemas.auth import (
    ChangePasswordRequest, ChangeTemporaryPasswordRequest, LoginRequest, LoginResponse,
    MessageResponse, RefreshTokenRequest, TokenResponse,
)
from app.services.account_service import AccountService

router = APIRouter()


# ── Login ─────────────────────────────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse)
@limiter.limit("10/minute")
def login(
    request: Request,
    body: LoginRequest,
    service: AccountService = Depends(get_account_service),
):
    result = service.authenticate(body.username_login, body.password_login)
    message = (
        "Login successful. Please change your temporary password."
        if result.password_change_required else "Login successful"
    )
    return LoginResponse(
        message=message,
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        password_change_required=result.password_change_required,
        user=AccountOut.model_validate(result.account),
    )


# ── Token Refresh ─────────────────────────────────────────────────────────────

@router.post("/refresh", response_model=TokenResponse)
@limiter.limit("20/minute")
def refresh_token(
    request: Request,
    body: RefreshTokenRequest,
    service: AccountService = Depends(get_account_service),
):
    """
    Exchange a refresh token for a new access token. The refresh token itself
    is returned unchanged; there is no rotation or revocation.
    """
    access, refresh = service.refresh_access_token(body.refresh_token)
    return TokenResponse(access_token=access, refresh_token=refresh)


@router.get("/check")
def check_token(claims: dict = Depends(get_current_claims)):
    """Cheap "am I still logged in" check; reads the token only."""
    return {"authenticated": True, "user_id": claims["sub"], "role": claims.get("role")}


# ── Password change ───────────────────────────────────────────────────────────

@router.post("/change-password", response_model=LoginResponse)
@limiter.limit("5/minute")
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_account_service),
):
    result = service.change_password(
        account_id, body.current_password, body.new_password, body.confirm_password
    )
    return LoginResponse(
        message="Password changed successfully",
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        user=AccountOut.model_validate(result.account),
    )


@router.post("/change-password-new-user", response_model=MessageResponse)
@limiter.limit("5/minute")
def change_temporary_password(
    request: Request,
    body: ChangeTemporaryPasswordRequest,
    service: AccountService = Depends(get_account_service),
):
    service.change_temporary_password(
        body.email, body.temp_password, body.new_password, body.confirm_password
    )
    return {"message": "Password changed successfully. You can now log in with your new password."}
