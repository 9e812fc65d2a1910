"""
slowapi rate limiter instance.
Import `limiter` into routers and decorate endpoints with @limiter.limit("N/period").

Every rate-limited endpoint MUST take `request: Request` (slowapi reads the
client IP from it), and @limiter.limit goes BELOW the @router.xxx decorator.

OTP endpoints carry the tightest limits: a 6-digit code is only as strong as
the number of guesses allowed against it.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200/minute"],
    enabled=settings.rate_limit_enabled,
)
