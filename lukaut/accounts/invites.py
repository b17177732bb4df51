"""Invite codes gating registration during early access.

Codes come from ``VALID_INVITE_CODES`` and are compared case-insensitively.
With ``INVITE_CODES_ENABLED`` off every registration is accepted.
"""

from __future__ import annotations

from lukaut.config import get_config


def invite_codes_enabled() -> bool:
    return get_config().invite_codes_enabled


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def is_valid_invite_code(code: str | None) -> bool:
    config = get_config()
    if not config.invite_codes_enabled:
        return True
    normalized = normalize_code(code)
    return bool(normalized) and normalized in config.invite_codes


def invite_code_error(code: str | None) -> str | None:
    if not invite_codes_enabled():
        return None
    if not normalize_code(code):
        return "Invite code is required"
    if not is_valid_invite_code(code):
        return "Invalid invite code"
    return None
