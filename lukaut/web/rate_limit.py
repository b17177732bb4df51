"""Rate Limiting Middleware for FastAPI.

Redis sliding window per client and path. Requests pass through unlimited
when Redis is unavailable.
"""

from __future__ import annotations

import time
from typing import Callable

import redis
import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from lukaut.web.auth import get_redis_client

logger = structlog.get_logger(__name__)

# Requests per window
DEFAULT_RATE_LIMIT = 120
AUTH_RATE_LIMIT = 10
HEAVY_RATE_LIMIT = 20

RATE_LIMIT_WINDOW = 60

AUTH_PATHS = ("/login", "/register", "/forgot-password", "/reset-password", "/resend-verification")


def get_client_identifier(request: Request) -> str:
    """Client IP, honouring X-Forwarded-For from a reverse proxy."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def get_rate_limit_for_request(method: str, path: str) -> int:
    if method == "POST" and path.startswith(AUTH_PATHS):
        return AUTH_RATE_LIMIT
    if method == "POST" and (path.endswith("/images") or path.endswith("/analyze") or path.endswith("/reports")):
        return HEAVY_RATE_LIMIT
    return DEFAULT_RATE_LIMIT


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware that enforces rate limiting on requests."""

    EXEMPT_PATHS = ("/health", "/metrics", "/static", "/favicon.ico", "/webhooks/")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path.startswith(self.EXEMPT_PATHS):
            return await call_next(request)

        client_id = get_client_identifier(request)
        rate_limit = get_rate_limit_for_request(request.method, path)
        key = f"rate_limit:{client_id}:{request.method}:{path}"
        now = time.time()

        try:
            pipe = get_redis_client().pipeline()
            pipe.zremrangebyscore(key, 0, now - RATE_LIMIT_WINDOW)
            pipe.zadd(key, {str(now): now})
            pipe.zcard(key)
            pipe.expire(key, RATE_LIMIT_WINDOW + 1)
            request_count = pipe.execute()[2]
        except redis.exceptions.RedisError as exc:
            logger.debug("rate_limit_unavailable", error=str(exc))
            return await call_next(request)

        if request_count > rate_limit:
            logger.warning("rate_limit_exceeded", client=client_id, path=path, count=request_count)
            return JSONResponse(
                status_code=429,
                content={
                    "error": {
                        "code": "rate_limit",
                        "message": f"Too many requests. Try again in {RATE_LIMIT_WINDOW} seconds.",
                    }
                },
                headers={
                    "Retry-After": str(RATE_LIMIT_WINDOW),
                    "X-RateLimit-Limit": str(rate_limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rate_limit)
        response.headers["X-RateLimit-Remaining"] = str(max(rate_limit - request_count, 0))
        return response
