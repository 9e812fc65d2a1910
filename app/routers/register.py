"""
OTP-gated flows: email registration and forgot-password.

Registration:
  1. POST /auth/register/check-email → is the email free?
  2. POST /auth/register/send-otp    → 6-digit code by email (email must be free)
  3. POST /auth/register/verify-otp  → optional pre-check, does not consume the code
  4. POST /auth/register/complete    → code + password → active account

Forgot password:
  1. POST /auth/forgot-password/send-otp   → code by email (account must exist)
  2. POST /auth/forgot-password/verify-otp → optional pre-check
  3. POST /auth/forgot-password/reset      → code + new password

The code is delivered in the background; send-otp answers as soon as it is
queued. Codes live for OTP_EXPIRE_MINUTES and are consumed on success only.
"""
from fastapi import APIRouter, Depends, Request

from app.core.dependencies import get_account_service
from app.core.rate_limiter import limiter
from app.schemas.account import AccountOut
from app.schemas.auth import (
    CheckEmailResponse, CompleteRegistrationRequest, MessageResponse, ResetPasswordRequest,
    SendOTPRequest, VerifyOTPRequest, VerifyOTPResponse,
)
from app.services.account_service import AccountService

register_router = APIRouter()
forgot_router = APIRouter()


def _sent_message(queued: bool) -> dict:
    if queued:
        return {"message": "OTP sent. Please check your email."}
    return {"message": "OTP issued but the email could not be queued. Please request a new one shortly."}


def _verify_message(valid: bool) -> VerifyOTPResponse:
    return VerifyOTPResponse(
        valid=valid,
        message="OTP is valid" if valid else "Invalid or expired OTP",
    )


# ── Registration ──────────────────────────────────────────────────────────────

@register_router.post("/check-email", response_model=CheckEmailResponse)
@limiter.limit("20/minute")
def check_email(
    request: Request,
    body: SendOTPRequest,
    service: AccountService = Depends(get_account_service),
):
    exists = service.email_exists(body.email)
    return CheckEmailResponse(
        exists=exists,
        message="This email is already registered" if exists else "Email is available",
    )


@register_router.post("/send-otp", response_model=MessageResponse)
@limiter.limit("3/minute")
def send_register_otp(
    request: Request,
    body: SendOTPRequest,
    service: AccountService = Depends(get_account_service),
):
    return _sent_message(service.request_otp(body.email, "register"))


@register_router.post("/verify-otp", response_model=VerifyOTPResponse)
@limiter.limit("10/minute")
def verify_register_otp(
    request: Request,
    body: VerifyOTPRequest,
    service: AccountService = Depends(get_account_service),
):
    return _verify_message(service.verify_otp(body.email, body.otp, "register"))


@register_router.post("/complete", response_model=AccountOut, status_code=201)
@limiter.limit("5/minute")
def complete_registration(
    request: Request,
    body: CompleteRegistrationRequest,
    service: AccountService = Depends(get_account_service),
):
    return service.register(body.email, body.otp, body.password, body.username)


# ── Forgot password ───────────────────────────────────────────────────────────

@forgot_router.post("/send-otp", response_model=MessageResponse)
@limiter.limit("3/minute")
def send_forgot_otp(
    request: Request,
    body: SendOTPRequest,
    service: AccountService = Depends(get_account_service),
):
    return _sent_message(service.request_otp(body.email, "forgot"))


@forgot_router.post("/verify-otp", response_model=VerifyOTPResponse)
@limiter.limit("10/minute")
def verify_forgot_otp(
    request: Request,
    body: VerifyOTPRequest,
    service: AccountService = Depends(get_account_service),
):
    return _verify_message(service.verify_otp(body.email, body.otp, "forgot"))


@forgot_router.post("/reset", response_model=MessageResponse)
@limiter.limit("5/minute")
def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    service: AccountService = Depends(get_account_service),
):
    service.reset_password(body.email, body.otp, body.new_password)
    return {"message": "Password reset successfully. You can now login with your new password."}
