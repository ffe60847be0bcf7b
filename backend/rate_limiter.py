import os
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

RATE_LIMIT_CHAT         = os.getenv("RATE_LIMIT_CHAT", "30")


def get_identifier(request: Request) -> str:
    """
    Get rate limit identifier for the caller.
    Uses the bearer token when present so users behind one address
    do not share a bucket, otherwise the remote address.
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        return f"bearer:{auth_header[7:][-32:]}"

    return get_remote_address(request)

limiter = Limiter(key_func=get_identifier)

def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Custom handler for rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Rate limit exceeded",
            "retry_after": exc.detail,
        }
    )

def chat_rate_limit():
    """Rate limit for the streaming chat endpoint."""
    return limiter.limit(f"{RATE_LIMIT_CHAT}/minute")
