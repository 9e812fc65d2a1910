"""
Security utilities: password hashing and JWT session tokens.

Tokens are stateless. Nothing is stored server-side, so a token stays valid
for its whole lifetime even if the account is deactivated meanwhile; the
refresh endpoint is where account state is looked at again.
"""
import jwt
from jwt.exceptions import InvalidTokenError
from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.config import settings
from app.core.exceptions import CredentialsException
from app.schemas.account import AccountRecord

DEFAULT_ROLE_CLAIM = "USER"

# ── Password Hashing ──────────────────────────────────────────────────────────
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # stored value is not a hash passlib recognises
        return False


# ── JWT Token Creation ────────────────────────────────────────────────────────

def role_claim(account: AccountRecord) -> str:
    return account.role.upper() if account.role else DEFAULT_ROLE_CLAIM


def create_access_token(account: AccountRecord, expires_delta: Optional[timedelta] = None) -> str:
    """
    Short-lived access token. Carries the role so route guards never need a
    store round trip.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": account.id,
        "email": account.username_login,
        "role": role_claim(account),
        "type": "access",
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes)),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def create_refresh_token(account: AccountRecord, expires_delta: Optional[timedelta] = None) -> str:
    """
    Long-lived refresh token. Identity only; the role is re-read from the
    store every time an access token is minted from it.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": account.id,
        "type": "refresh",
        "iat": now,
        "exp": now + (expires_delta or timedelta(days=settings.refresh_token_expire_days)),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str, expected_type: Optional[str] = None) -> dict:
    """
    Checks signature and expiry, and the token type when one is expected.
    Any failure becomes a CredentialsException.
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except InvalidTokenError:
        raise CredentialsException("Invalid or expired token")
    if expected_type and payload.get("type") != expected_type:
        raise CredentialsException(f"Wrong token type, expected {expected_type}")
    if not payload.get("sub"):
        raise CredentialsException()
    return payload


def decode_access_token(token: str) -> dict:
    return decode_token(token, "access")


def decode_refresh_token(token: str) -> dict:
    return decode_token(token, "refresh")
