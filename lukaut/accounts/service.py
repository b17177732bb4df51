"""User account operations: registration, login, profile and password."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from uuid import UUID

import bcrypt
import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.accounts.invites import invite_code_error
from lukaut.db.models import UserModel, utcnow
from lukaut.errors import ValidationError, conflict, not_found, unauthorized
from lukaut.utils.validation import (
    clean,
    email_error,
    length_error,
    normalize_email,
    password_error,
    required_error,
)

logger = structlog.get_logger(__name__)

BCRYPT_ROUNDS = 12
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"

# Compared against when the email is unknown so both paths cost one bcrypt check
_dummy_hash: bytes | None = None


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def _get_dummy_hash() -> bytes:
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = bcrypt.hashpw(b"lukaut-timing-equalizer", bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return _dummy_hash


@dataclass(slots=True)
class RegisterParams:
    email: str
    password: str
    name: str
    company_name: str | None = None
    phone: str | None = None
    invite_code: str | None = None


@dataclass(slots=True)
class ProfileParams:
    name: str
    company_name: str | None = None
    phone: str | None = None


@dataclass(slots=True)
class BusinessProfileParams:
    business_name: str | None = None
    business_email: str | None = None
    business_phone: str | None = None
    business_address_line1: str | None = None
    business_address_line2: str | None = None
    business_city: str | None = None
    business_state: str | None = None
    business_postal_code: str | None = None
    business_license_number: str | None = None
    business_logo_url: str | None = None


async def get_user(session: AsyncSession, user_id: UUID) -> UserModel:
    user = await session.get(UserModel, user_id)
    if user is None:
        raise not_found("User", user_id, op="accounts.get_user")
    return user


async def get_user_by_email(session: AsyncSession, email: str) -> UserModel | None:
    result = await session.execute(
        select(UserModel).where(UserModel.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def register(session: AsyncSession, params: RegisterParams, require_invite: bool = True) -> UserModel:
    """Create a new account.

    Self-service sign-ups pass an invite code when invite codes are enabled;
    accounts created by an operator skip that check.

    Raises:
        ValidationError: On malformed input
        LukautError(ECONFLICT): If the email is already registered
    """
    email = normalize_email(params.email)
    fields: dict[str, str] = {}
    if err := email_error(email):
        fields["email"] = err
    if err := required_error(params.name, "Name", max_length=255):
        fields["name"] = err
    if err := password_error(params.password):
        fields["password"] = err
    if err := length_error(clean(params.company_name), "Company name", 255):
        fields["company_name"] = err
    if require_invite and (err := invite_code_error(params.invite_code)):
        fields["invite_code"] = err
    if fields:
        raise ValidationError(fields, op="accounts.register")

    if await get_user_by_email(session, email) is not None:
        raise conflict("Email already registered", op="accounts.register")

    user = UserModel(
        email=email,
        password_hash=hash_password(params.password),
        name=clean(params.name),
        company_name=clean(params.company_name),
        phone=clean(params.phone),
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError as exc:
        raise conflict("Email already registered", op="accounts.register") from exc

    logger.info("user_registered", user_id=str(user.id))
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> UserModel:
    """Verify credentials and return the user.

    Unknown email, wrong password and disabled accounts all raise the same
    EUNAUTHORIZED error.
    """
    email = normalize_email(email)
    fields: dict[str, str] = {}
    if not email:
        fields["email"] = "Email is required"
    if not password:
        fields["password"] = "Password is required"
    if fields:
        raise ValidationError(fields, op="accounts.authenticate")

    user = await get_user_by_email(session, email)
    if user is None:
        bcrypt.checkpw(password.encode(), _get_dummy_hash())
        raise unauthorized(INVALID_CREDENTIALS_MESSAGE, op="accounts.authenticate")

    if not verify_password(password, user.password_hash) or not user.is_active:
        raise unauthorized(INVALID_CREDENTIALS_MESSAGE, op="accounts.authenticate")

    user.last_login = utcnow()
    await session.flush()
    return user


async def update_profile(session: AsyncSession, user_id: UUID, params: ProfileParams) -> UserModel:
    fields: dict[str, str] = {}
    if err := required_error(params.name, "Name", max_length=255):
        fields["name"] = err
    if err := length_error(clean(params.company_name), "Company name", 255):
        fields["company_name"] = err
    if fields:
        raise ValidationError(fields, op="accounts.update_profile")

    user = await get_user(session, user_id)
    user.name = clean(params.name)
    user.company_name = clean(params.company_name)
    user.phone = clean(params.phone)
    await session.flush()
    return user


async def change_password(
    session: AsyncSession, user_id: UUID, current_password: str, new_password: str
) -> None:
    user = await get_user(session, user_id)
    fields: dict[str, str] = {}
    if not verify_password(current_password or "", user.password_hash):
        fields["current_password"] = "Current password is incorrect"
    if err := password_error(new_password):
        fields["new_password"] = err
    if fields:
        raise ValidationError(fields, op="accounts.change_password")

    user.password_hash = hash_password(new_password)
    await session.flush()
    logger.info("password_changed", user_id=str(user_id))


async def set_password(session: AsyncSession, user: UserModel, new_password: str) -> None:
    if err := password_error(new_password):
        raise ValidationError({"password": err}, op="accounts.set_password")
    user.password_hash = hash_password(new_password)
    await session.flush()


async def update_business_profile(
    session: AsyncSession, user_id: UUID, params: BusinessProfileParams
) -> UserModel:
    business_email = clean(params.business_email)
    fields: dict[str, str] = {}
    if err := email_error(business_email, required=False):
        fields["business_email"] = err
    if err := length_error(clean(params.business_name), "Business name", 255):
        fields["business_name"] = err
    if fields:
        raise ValidationError(fields, op="accounts.update_business_profile")

    user = await get_user(session, user_id)
    for f in dataclasses.fields(params):
        setattr(user, f.name, clean(getattr(params, f.name)))
    if business_email:
        user.business_email = normalize_email(business_email)
    await session.flush()
    return user


async def set_active(session: AsyncSession, user_id: UUID, active: bool) -> UserModel:
    user = await get_user(session, user_id)
    user.is_active = active
    await session.flush()
    logger.info("user_active_changed", user_id=str(user_id), active=active)
    return user


async def list_users(
    session: AsyncSession, q: str | None = None, limit: int = 20, offset: int = 0
) -> tuple[list[UserModel], int]:
    """Admin listing of all accounts, newest first."""
    stmt = select(UserModel)
    count_stmt = select(func.count()).select_from(UserModel)
    if q := clean(q):
        pattern = f"%{q.lower()}%"
        condition = or_(
            func.lower(UserModel.email).like(pattern), func.lower(UserModel.name).like(pattern)
        )
        stmt = stmt.where(condition)
        count_stmt = count_stmt.where(condition)

    total = await session.scalar(count_stmt) or 0
    result = await session.execute(
        stmt.order_by(UserModel.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars()), total
