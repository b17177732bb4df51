"""Audit trail for security-relevant actions.

Entries are written to the ``audit_logs`` table and mirrored to the
structured log with the current request id.
"""

from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.db.connection import get_session
from lukaut.db.models import AuditLogModel

logger = structlog.get_logger(__name__)


def _coerce_user_id(user_id: str | UUID | None) -> UUID | None:
    if user_id is None or isinstance(user_id, UUID):
        return user_id
    try:
        return UUID(user_id)
    except ValueError:
        return None


async def log_action(
    request: Request | None,
    action: str,
    email: str | None,
    user_id: str | UUID | None = None,
    resource_type: str | None = None,
    resource_id: str | UUID | None = None,
    details: dict | None = None,
    session: AsyncSession | None = None,
) -> None:
    """Record an action such as ``LOGIN`` or ``INSPECTION_COMPLETED``.

    ``request`` is None when called from the worker. When ``session`` is
    given the entry joins the caller's transaction; otherwise it is committed
    on its own.
    """
    entry = AuditLogModel(
        user_id=_coerce_user_id(user_id),
        email=email,
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        details=details,
        ip_address=request.client.host if request is not None and request.client else None,
    )
    logger.info(
        "audit",
        action=action,
        email=email,
        resource_type=resource_type,
        resource_id=entry.resource_id,
    )

    if session is not None:
        session.add(entry)
        return
    async with get_session() as own_session:
        own_session.add(entry)
