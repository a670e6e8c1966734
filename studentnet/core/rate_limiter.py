"""
Per-client request limits (slowapi, in-memory storage).

- /auth/register, /auth/login, /auth/forgot-password, /auth/reset-password: AUTH_RATE_LIMIT
- /auth/verify-otp, /auth/resend-otp: OTP_RATE_LIMIT
- /users/search, /users/filter: SEARCH_RATE_LIMIT
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from studentnet.core.config import settings
from studentnet.core.logging_config import logger


limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.RATE_LIMIT_ENABLED,
    storage_uri="memory://",
    strategy="fixed-window",
)


def auth_rate_limit():
    return limiter.limit(settings.AUTH_RATE_LIMIT)


def otp_rate_limit():
    return limiter.limit(settings.OTP_RATE_LIMIT)


def search_rate_limit():
    return limiter.limit(settings.SEARCH_RATE_LIMIT)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(
        f"[RateLimit] Exceeded for {get_remote_address(request)}: {exc.detail}"
    )
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": {
                "code": "RATE_LIMITED",
                "message": "Too many requests. Please try again later.",
                "details": {"limit": str(exc.detail)},
            },
        },
    )
