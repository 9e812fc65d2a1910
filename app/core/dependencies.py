"""
FastAPI dependencies used across routers.
Keep this file lean: only auth and service wiring go here.
Business logic belongs in services/.

The store, OTP issuer and dispatcher are process-wide singletons. Tests swap
them through app.dependency_overrides.
"""
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.core.exceptions import CredentialsException, ForbiddenException
from app.core.security import decode_access_token
from app.database import build_engine, get_supabase
from app.services.account_service import AccountService
from app.services.email_service import EmailNotifier
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.otp_service import InMemoryOTPStore, OTPIssuer
from app.services.record_store import RecordStore, SqlRecordStore, SupabaseRecordStore
from app.services.relationship_service import RelationshipService

bearer_scheme = HTTPBearer(auto_error=False)

ADMIN_ROLE_CLAIM = "ADMIN"


@lru_cache()
def get_record_store() -> RecordStore:
    if settings.store_backend == "sql":
        return SqlRecordStore(build_engine(settings.database_url))
    return SupabaseRecordStore(get_supabase())


@lru_cache()
def get_otp_issuer() -> OTPIssuer:
    return OTPIssuer(InMemoryOTPStore(), ttl=timedelta(minutes=settings.otp_expire_minutes))


@lru_cache()
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(EmailNotifier(settings), maxsize=settings.notification_queue_size)


def get_account_service(
    store: RecordStore = Depends(get_record_store),
    otp_issuer: OTPIssuer = Depends(get_otp_issuer),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> AccountService:
    return AccountService(store, otp_issuer, dispatcher, settings)


def get_relationship_service(store: RecordStore = Depends(get_record_store)) -> RelationshipService:
    return RelationshipService(store, settings)


def get_current_claims(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> dict:
    """
    Validates the bearer access token and returns its claims.

    Purely stateless: the account is not re-read, so a deactivated account
    keeps working until its access token expires.
    """
    if credentials is None or not credentials.credentials:
        raise CredentialsException("Not authenticated")
    return decode_access_token(credentials.credentials)


def get_current_account_id(claims: dict = Depends(get_current_claims)) -> str:
    return claims["sub"]


def require_admin(claims: dict = Depends(get_current_claims)) -> dict:
    if claims.get("role") != ADMIN_ROLE_CLAIM:
        raise ForbiddenException("Admin access required")
    return claims
