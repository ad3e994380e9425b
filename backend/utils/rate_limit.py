"""Rate limiting utilities"""

from fastapi import Request
from slowapi import Limiter

from config import config


def get_client_ip(request: Request) -> str:
    """Best-effort client address, honouring the usual proxy headers"""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()

    return request.client.host if request.client else "unknown"


def get_client_endpoint_key(request: Request) -> str:
    """Rate limit bucket: one window per (client, endpoint path)"""
    return f"{get_client_ip(request)}:{request.url.path}"


# Shared limiter instance - can be imported by route modules and app factory
limiter = Limiter(
    key_func=get_client_endpoint_key,
    strategy="moving-window",
    headers_enabled=True,
    enabled=config.RATE_LIMIT_ENABLED,
)
