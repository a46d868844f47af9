"""Rate limiting for the evaluation endpoint using slowapi.

Each evaluation fans out into one model call per criterion, so the limit
is per client and applies to /api/evaluate only.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.config import settings


def client_key(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the peer address."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",")[0].strip()
    return first_hop or get_remote_address(request)


# Disabled when APP_ENV=test
limiter = Limiter(key_func=client_key, enabled=settings.app_env != "test")
