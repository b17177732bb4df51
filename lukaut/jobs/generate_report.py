"""generate_report job: render, store and announce an inspection report."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.accounts.service import get_user
from lukaut.config import get_config
from lukaut.core.storage import get_storage
from lukaut.errors import EINVALID, ENOTFOUND, LukautError
from lukaut.inspections.service import get_inspection
from lukaut.jobs.analyze import parse_ids
from lukaut.jobs.handlers import FollowUp, PermanentError, register
from lukaut.models import JobType, ReportFormat
from lukaut.notifications.email import get_email_service
from lukaut.reporting.service import generate_report

logger = structlog.get_logger(__name__)

CLIENT_LINK_TTL_SECONDS = 7 * 24 * 3600


async def generate_report_job(session: AsyncSession, payload: dict[str, Any]) -> FollowUp | None:
    fmt = str(payload.get("format") or "")
    if fmt not in (ReportFormat.PDF.value, ReportFormat.DOCX.value):
        raise PermanentError(f"invalid format: {fmt} (must be 'pdf' or 'docx')")
    inspection_id, user_id = parse_ids(payload)

    try:
        inspection = await get_inspection(session, inspection_id, user_id)
        report = await generate_report(session, inspection_id, user_id, fmt)
    except LukautError as exc:
        if exc.code in (EINVALID, ENOTFOUND):
            raise PermanentError(str(exc)) from exc
        raise

    user = await get_user(session, user_id)
    inspector_name = user.business_name or user.name
    inspector_email = user.business_email or user.email
    site_name = inspection.title
    recipient = (payload.get("recipient_email") or "").strip()
    download_link = f"{get_config().base_url}/reports/{report.id}/download?format={fmt}"
    storage_key = report.storage_key_for(fmt)

    async def send_notifications() -> None:
        emails = get_email_service()
        sent = await asyncio.to_thread(
            emails.send_report_ready_email, inspector_email, inspector_name, download_link
        )
        if not sent:
            logger.warning("report_ready_email_not_sent", report_id=str(report.id))
        if recipient:
            client_link = get_storage().url(storage_key, CLIENT_LINK_TTL_SECONDS)
            sent = await asyncio.to_thread(
                emails.send_report_to_client_email,
                recipient,
                inspector_name,
                user.company_name,
                site_name,
                client_link,
            )
            if not sent:
                logger.warning("report_client_email_not_sent", report_id=str(report.id))

    return send_notifications


handler = register(JobType.GENERATE_REPORT, generate_report_job)
