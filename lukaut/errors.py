"""Application error taxonomy.

Every service raises ``LukautError`` (or its ``ValidationError`` subclass)
carrying one of a closed set of codes. The web layer maps codes to HTTP
status codes in exactly one place (``lukaut.web.errors``).
"""

from __future__ import annotations

from typing import Any

# Error codes
EINVALID = "invalid"
EUNAUTHORIZED = "unauthorized"
EPAYMENT = "payment"
EFORBIDDEN = "forbidden"
ENOTFOUND = "not_found"
ECONFLICT = "conflict"
EGONE = "gone"
ETOOLARGE = "too_large"
ERATELIMIT = "rate_limit"
EINTERNAL = "internal"
ENOTIMPL = "not_impl"

HTTP_STATUS_BY_CODE: dict[str, int] = {
    EINVALID: 400,
    EUNAUTHORIZED: 401,
    EPAYMENT: 402,
    EFORBIDDEN: 403,
    ENOTFOUND: 404,
    ECONFLICT: 409,
    EGONE: 410,
    ETOOLARGE: 413,
    ERATELIMIT: 429,
    EINTERNAL: 500,
    ENOTIMPL: 501,
}

INTERNAL_ERROR_MESSAGE = "An internal error occurred. Please try again later."


class LukautError(Exception):
    """Application error with a machine-readable code and a user-safe message.

    Args:
        code: One of the E* codes in this module
        message: Message safe to show to end users
        op: Logical operation that failed (e.g. "inspections.create")
        cause: Underlying exception, never shown to users
    """

    def __init__(
        self,
        code: str,
        message: str = "",
        op: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message or code)
        self.code = code
        self.message = message
        self.op = op
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = []
        if self.op:
            parts.append(f"{self.op}: ")
        if self.cause is not None:
            parts.append(str(self.cause))
        else:
            parts.append(f"<{self.code}> {self.message}")
        return "".join(parts)


class ValidationError(LukautError):
    """Invalid input with per-field messages."""

    def __init__(self, fields: dict[str, str], op: str | None = None):
        super().__init__(EINVALID, "Validation failed", op=op)
        self.fields = dict(fields)

    def __str__(self) -> str:
        detail = ", ".join(f"{k}: {v}" for k, v in self.fields.items())
        return f"validation failed: {detail}" if detail else "validation failed"


def error_code(exc: BaseException | None) -> str:
    """Return the code of an error, ``internal`` for anything unrecognised."""
    if exc is None:
        return ""
    if isinstance(exc, LukautError):
        return exc.code
    return EINTERNAL


def error_message(exc: BaseException | None) -> str:
    """Return a message safe to show to users."""
    if exc is None:
        return ""
    if isinstance(exc, LukautError):
        if exc.code == EINTERNAL:
            return INTERNAL_ERROR_MESSAGE
        return exc.message or INTERNAL_ERROR_MESSAGE
    return INTERNAL_ERROR_MESSAGE


def http_status_for(code: str) -> int:
    """Map an error code to its HTTP status, 500 for unknown codes."""
    return HTTP_STATUS_BY_CODE.get(code, 500)


# ============================================================================
# Constructors
# ============================================================================


def invalid(message: str, op: str | None = None) -> LukautError:
    return LukautError(EINVALID, message, op=op)


def unauthorized(message: str = "Authentication required", op: str | None = None) -> LukautError:
    return LukautError(EUNAUTHORIZED, message, op=op)


def forbidden(message: str = "You do not have permission to do that", op: str | None = None) -> LukautError:
    return LukautError(EFORBIDDEN, message, op=op)


def not_found(entity: str, entity_id: Any, op: str | None = None) -> LukautError:
    return LukautError(ENOTFOUND, f"{entity} with ID '{entity_id}' not found", op=op)


def conflict(message: str, op: str | None = None) -> LukautError:
    return LukautError(ECONFLICT, message, op=op)


def payment_required(message: str, op: str | None = None) -> LukautError:
    return LukautError(EPAYMENT, message, op=op)


def too_large(message: str, op: str | None = None) -> LukautError:
    return LukautError(ETOOLARGE, message, op=op)


def internal(cause: BaseException, op: str | None = None) -> LukautError:
    """Wrap an unexpected exception so its details never reach users."""
    return LukautError(EINTERNAL, INTERNAL_ERROR_MESSAGE, op=op, cause=cause)
