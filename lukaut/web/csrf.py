"""CSRF Protection Middleware for FastAPI.

Double-submit cookie: a random token is set in the ``csrf_token`` cookie and
must come back in the ``X-CSRF-Token`` header (htmx requests) or the
``csrf_token`` form field (plain forms) on every state-changing request.
"""

from __future__ import annotations

import secrets
from typing import Callable

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from lukaut.config import get_config

logger = structlog.get_logger(__name__)

# CSRF token length (32 bytes = 256 bits of entropy)
CSRF_TOKEN_LENGTH = 32
CSRF_COOKIE_NAME = "csrf_token"
CSRF_HEADER_NAME = "X-CSRF-Token"
CSRF_FORM_FIELD = "csrf_token"

# Safe HTTP methods that don't require CSRF protection
SAFE_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE"}

# Webhooks carry their own signatures
EXEMPT_PATHS = (
    "/webhooks/",
    "/health",
    "/metrics",
)


def generate_csrf_token() -> str:
    return secrets.token_urlsafe(CSRF_TOKEN_LENGTH)


def is_exempt_path(path: str) -> bool:
    return any(path.startswith(exempt) for exempt in EXEMPT_PATHS)


def get_csrf_token(request: Request) -> str:
    """Token for templates: the cookie value, or the one minted for this request."""
    return getattr(request.state, "csrf_token", None) or request.cookies.get(CSRF_COOKIE_NAME, "")


async def get_submitted_token(request: Request) -> str | None:
    token = request.headers.get(CSRF_HEADER_NAME)
    if token:
        return token
    if request.headers.get("content-type", "").startswith("application/x-www-form-urlencoded"):
        # Cache the body so the route can read the form again
        await request.body()
        form = await request.form()
        value = form.get(CSRF_FORM_FIELD)
        return value if isinstance(value, str) else None
    return None


def set_csrf_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=CSRF_COOKIE_NAME,
        value=token,
        httponly=False,  # htmx reads it for the request header
        secure=get_config().secure_cookies,
        samesite="lax",
        max_age=7 * 24 * 3600,
        path="/",
    )


class CSRFMiddleware(BaseHTTPMiddleware):
    """Middleware that enforces CSRF protection on state-changing requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        cookie_token = request.cookies.get(CSRF_COOKIE_NAME)

        if request.method in SAFE_METHODS or is_exempt_path(request.url.path):
            minted = None
            if not cookie_token:
                minted = generate_csrf_token()
                request.state.csrf_token = minted
            response = await call_next(request)
            if minted:
                set_csrf_cookie(response, minted)
            return response

        submitted = await get_submitted_token(request)
        if not cookie_token or not submitted or not secrets.compare_digest(cookie_token, submitted):
            logger.warning(
                "csrf_rejected",
                method=request.method,
                path=request.url.path,
                reason="missing" if not cookie_token or not submitted else "mismatch",
            )
            return JSONResponse(
                status_code=403,
                content={"error": {"code": "forbidden", "message": "Invalid or missing CSRF token"}},
            )

        return await call_next(request)
