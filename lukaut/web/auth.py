"""Session authentication for the Lukaut web UI.

Sessions live in Redis under ``session:<token>`` with a 7 day TTL. When Redis
is unreachable (local development) they fall back to process memory.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import quote, urlsplit
from uuid import UUID

import redis
import structlog
from fastapi import HTTPException, Request, Response

from lukaut.config import get_config
from lukaut.db.connection import get_session
from lukaut.db.models import UserModel, utcnow
from lukaut.errors import forbidden

logger = structlog.get_logger(__name__)

SESSION_COOKIE = "lukaut_session"
SESSION_EXPIRY_DAYS = 7
SESSION_EXPIRY_SECONDS = SESSION_EXPIRY_DAYS * 24 * 3600
SESSION_KEY_PREFIX = "session:"

# In-memory fallback for development when Redis is missing
_memory_sessions: dict[str, dict] = {}
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Get Redis client for session storage."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            get_config().redis_url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
    return _redis_client


@dataclass(slots=True)
class SessionData:
    user_id: UUID
    email: str
    created_at: datetime
    expires_at: datetime

    def to_json(self) -> str:
        return json.dumps(
            {
                "user_id": str(self.user_id),
                "email": self.email,
                "created_at": self.created_at.isoformat(),
                "expires_at": self.expires_at.isoformat(),
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> SessionData:
        data = json.loads(raw)
        return cls(
            user_id=UUID(data["user_id"]),
            email=data["email"],
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


def prune_memory_sessions(now: datetime | None = None) -> int:
    """Drop expired in-memory sessions; returns how many were removed."""
    now = now or utcnow()
    expired = [
        token
        for token, entry in _memory_sessions.items()
        if entry.get("expires_at") is not None and entry["expires_at"] <= now
    ]
    for token in expired:
        del _memory_sessions[token]
    return len(expired)


def create_session(user: UserModel) -> str:
    """Create a session for an authenticated user and return its token."""
    token = secrets.token_urlsafe(32)
    now = utcnow()
    data = SessionData(
        user_id=user.id,
        email=user.email,
        created_at=now,
        expires_at=now + timedelta(days=SESSION_EXPIRY_DAYS),
    )
    try:
        get_redis_client().setex(SESSION_KEY_PREFIX + token, SESSION_EXPIRY_SECONDS, data.to_json())
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        logger.warning("redis_unavailable_memory_sessions")
        prune_memory_sessions(now)
        _memory_sessions[token] = {"data": data.to_json(), "expires_at": data.expires_at}
    return token


def validate_session(token: str | None) -> SessionData | None:
    """Return the session for ``token`` if it exists and has not expired."""
    if not token:
        return None

    key = SESSION_KEY_PREFIX + token
    try:
        raw = get_redis_client().get(key)
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        entry = _memory_sessions.get(token)
        raw = entry["data"] if entry else None

    if not raw:
        return None

    try:
        data = SessionData.from_json(raw)
    except (json.JSONDecodeError, KeyError, ValueError):
        destroy_session(token)
        return None

    if utcnow() > data.expires_at:
        destroy_session(token)
        return None
    return data


def destroy_session(token: str | None) -> None:
    if not token:
        return
    try:
        get_redis_client().delete(SESSION_KEY_PREFIX + token)
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        pass
    _memory_sessions.pop(token, None)


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=get_config().secure_cookies,
        samesite="lax",
        max_age=SESSION_EXPIRY_SECONDS,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")


def is_safe_redirect_url(url: str | None) -> bool:
    """Only same-site absolute paths are safe redirect targets."""
    if not url or not url.startswith("/") or url.startswith("//"):
        return False
    if "\\" in url or any(ord(ch) < 32 for ch in url):
        return False
    parts = urlsplit(url)
    return not parts.scheme and not parts.netloc


def safe_redirect_target(url: str | None, default: str = "/dashboard") -> str:
    return url if is_safe_redirect_url(url) else default


def _login_redirect(request: Request) -> HTTPException:
    if request.headers.get("HX-Request") == "true":
        # htmx follows HX-Redirect with a full page load
        return HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"HX-Redirect": "/login"},
        )
    target = request.url.path
    if request.url.query:
        target += "?" + request.url.query
    location = "/login"
    if request.method == "GET" and is_safe_redirect_url(target):
        location += "?return_to=" + quote(target, safe="")
    return HTTPException(
        status_code=303,
        detail="Authentication required",
        headers={"Location": location},
    )


async def get_current_user(request: Request) -> UserModel | None:
    """The logged-in, active user, or None."""
    data = validate_session(request.cookies.get(SESSION_COOKIE))
    if data is None:
        return None
    async with get_session() as session:
        user = await session.get(UserModel, data.user_id)
    if user is None or not user.is_active:
        return None
    request.state.user = user
    return user


async def require_user(request: Request) -> UserModel:
    """Dependency to require authentication on routes.

    Raises:
        HTTPException: Redirect to /login when not authenticated
    """
    user = await get_current_user(request)
    if user is None:
        raise _login_redirect(request)
    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


def is_admin(user: UserModel) -> bool:
    return user.email.lower() in get_config().admin_emails


async def require_admin(request: Request) -> UserModel:
    """Dependency to require an account listed in ADMIN_EMAILS."""
    user = await require_user(request)
    if not is_admin(user):
        raise forbidden("Admin access required", op="auth.require_admin")
    return user
