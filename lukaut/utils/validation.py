"""Form input validation helpers.

Each helper returns an error message, or None when the value is acceptable,
so callers can collect per-field errors into a ``ValidationError``.
"""

from __future__ import annotations

from datetime import date

MAX_EMAIL_LENGTH = 254
MIN_PASSWORD_LENGTH = 8
# bcrypt only uses the first 72 bytes of the password
MAX_PASSWORD_LENGTH = 72


def clean(value: str | None) -> str | None:
    """Strip whitespace, turning blank strings into None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def email_error(value: str | None, required: bool = True) -> str | None:
    """Validate an email address with deliberately simple structural rules."""
    value = (value or "").strip()
    if not value:
        return "Email is required" if required else None
    if len(value) > MAX_EMAIL_LENGTH:
        return "Email is too long"
    if value.count("@") != 1 or value.startswith("@") or value.endswith("@"):
        return "Invalid email format"
    local, domain = value.split("@")
    if "." not in domain or ".." in value or domain.startswith(".") or domain.endswith("."):
        return "Invalid email format"
    if any(ch.isspace() for ch in value):
        return "Invalid email format"
    return None


def password_error(value: str | None) -> str | None:
    if not value:
        return "Password is required"
    if len(value) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    if len(value.encode()) > MAX_PASSWORD_LENGTH:
        return f"Password must be at most {MAX_PASSWORD_LENGTH} characters"
    return None


def required_error(value: str | None, label: str, max_length: int | None = None) -> str | None:
    value = clean(value)
    if not value:
        return f"{label} is required"
    if max_length is not None and len(value) > max_length:
        return f"{label} must be {max_length} characters or less"
    return None


def length_error(value: str | None, label: str, max_length: int) -> str | None:
    if value and len(value) > max_length:
        return f"{label} must be {max_length} characters or less"
    return None


def parse_date(value: str | date | None) -> date | None:
    """Parse an ISO ``YYYY-MM-DD`` date; None when blank or malformed."""
    if value is None or isinstance(value, date):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None
