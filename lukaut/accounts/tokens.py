"""Email verification and password reset tokens.

The raw token (32 random bytes, hex encoded) is only ever sent to the user;
the database keeps its SHA-256 hash.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.accounts.service import set_password
from lukaut.db.models import EmailTokenModel, UserModel, utcnow
from lukaut.errors import EGONE, LukautError, invalid

logger = structlog.get_logger(__name__)

PURPOSE_EMAIL_VERIFICATION = "email_verification"
PURPOSE_PASSWORD_RESET = "password_reset"

TOKEN_TTL = {
    PURPOSE_EMAIL_VERIFICATION: timedelta(hours=24),
    PURPOSE_PASSWORD_RESET: timedelta(hours=1),
}


def hash_token(raw: str) -> str:
    return hashlib.sha256(raw.encode()).hexdigest()


async def create_token(session: AsyncSession, user_id: UUID, purpose: str) -> str:
    """Issue a new token, invalidating any earlier unused ones for the same purpose."""
    now = utcnow()
    await session.execute(
        update(EmailTokenModel)
        .where(
            EmailTokenModel.user_id == user_id,
            EmailTokenModel.purpose == purpose,
            EmailTokenModel.used_at.is_(None),
        )
        .values(used_at=now)
    )

    raw = secrets.token_hex(32)
    session.add(
        EmailTokenModel(
            user_id=user_id,
            purpose=purpose,
            token_hash=hash_token(raw),
            expires_at=now + TOKEN_TTL[purpose],
        )
    )
    await session.flush()
    return raw


async def check_token(session: AsyncSession, raw: str, purpose: str) -> EmailTokenModel:
    """Look up a usable token without consuming it.

    Raises:
        LukautError(EINVALID): Unknown token
        LukautError(EGONE): Token already used or expired
    """
    if not raw:
        raise invalid("Invalid or missing token", op="tokens.check")

    result = await session.execute(
        select(EmailTokenModel).where(
            EmailTokenModel.token_hash == hash_token(raw),
            EmailTokenModel.purpose == purpose,
        )
    )
    token = result.scalar_one_or_none()
    if token is None:
        raise invalid("Invalid or missing token", op="tokens.check")
    if token.used_at is not None:
        raise LukautError(EGONE, "This link has already been used", op="tokens.check")
    if token.expires_at < utcnow():
        raise LukautError(EGONE, "This link has expired", op="tokens.check")
    return token


async def consume_token(session: AsyncSession, raw: str, purpose: str) -> UserModel:
    """Mark a token used and return its user. Raises like ``check_token``."""
    token = await check_token(session, raw, purpose)
    token.used_at = utcnow()
    user = await session.get(UserModel, token.user_id)
    if user is None:
        raise invalid("Invalid or missing token", op="tokens.consume")
    await session.flush()
    return user


async def verify_email(session: AsyncSession, raw: str) -> UserModel:
    user = await consume_token(session, raw, PURPOSE_EMAIL_VERIFICATION)
    if not user.email_verified:
        user.email_verified = True
        user.email_verified_at = utcnow()
        await session.flush()
    logger.info("email_verified", user_id=str(user.id))
    return user


async def reset_password(session: AsyncSession, raw: str, new_password: str) -> UserModel:
    user = await consume_token(session, raw, PURPOSE_PASSWORD_RESET)
    await set_password(session, user, new_password)
    logger.info("password_reset", user_id=str(user.id))
    return user
