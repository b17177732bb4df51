"""Report queueing, generation and download."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from uuid import UUID, uuid4

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.accounts.quota import check_quota
from lukaut.accounts.service import get_user
from lukaut.core.storage import Storage, get_storage
from lukaut.db.models import InspectionModel, JobModel, ReportModel
from lukaut.errors import LukautError, ENOTFOUND, invalid, not_found
from lukaut.inspections.service import count_violations, get_inspection
from lukaut.jobs.queue import enqueue
from lukaut.models import DEFAULT_PAGE_SIZE, InspectionStatus, JobType, Page, ReportFormat, ViolationStatus
from lukaut.reporting.data import prepare_report_data
from lukaut.reporting.docx_export import generate_inspection_docx
from lukaut.reporting.pdf_export import generate_inspection_pdf
from lukaut.utils.validation import clean, email_error, normalize_email

logger = structlog.get_logger(__name__)

INVALID_FORMAT_MESSAGE = "Invalid format: must be 'pdf' or 'docx'"
STATUS_MESSAGE = "Inspection must be in 'review' or 'completed' status to generate a report"
NO_CONFIRMED_MESSAGE = "Confirm at least one violation before generating a report"

CONTENT_TYPES = {
    ReportFormat.PDF.value: "application/pdf",
    ReportFormat.DOCX.value: "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

RENDERERS = {
    ReportFormat.PDF.value: generate_inspection_pdf,
    ReportFormat.DOCX.value: generate_inspection_docx,
}


@dataclass(slots=True)
class ReportSummary:
    report: ReportModel
    inspection_title: str


@dataclass(slots=True)
class ReportFile:
    data: bytes
    filename: str
    content_type: str


def parse_format(value: str | None, op: str) -> str:
    try:
        return ReportFormat((value or "").strip().lower()).value
    except ValueError:
        raise invalid(INVALID_FORMAT_MESSAGE, op=op) from None


def report_key(inspection_id: UUID, report_id: UUID, fmt: str) -> str:
    return f"reports/{inspection_id}/{report_id}.{fmt}"


def _check_reportable(inspection: InspectionModel, confirmed: int, op: str) -> None:
    if inspection.status not in (InspectionStatus.REVIEW.value, InspectionStatus.COMPLETED.value):
        raise invalid(STATUS_MESSAGE, op=op)
    if not inspection.can_generate_report(confirmed):
        raise invalid(NO_CONFIRMED_MESSAGE, op=op)


async def queue_report(
    session: AsyncSession,
    inspection_id: UUID,
    user_id: UUID,
    fmt: str | None,
    recipient_email: str | None = None,
) -> JobModel:
    """Validate and enqueue a generate_report job.

    Raises:
        LukautError(EINVALID): Bad format or recipient, wrong status, no confirmed violations
        LukautError(ENOTFOUND): Inspection missing or owned by someone else
        LukautError(EPAYMENT): Monthly report quota used up
    """
    op = "reports.queue"
    fmt = parse_format(fmt, op)

    recipient = normalize_email(recipient_email) if clean(recipient_email) else None
    if recipient is not None and (error := email_error(recipient, required=False)):
        raise invalid(f"Recipient email: {error}", op=op)

    inspection = await get_inspection(session, inspection_id, user_id)
    confirmed = await count_violations(session, inspection_id, ViolationStatus.CONFIRMED.value)
    _check_reportable(inspection, confirmed, op)

    user = await get_user(session, user_id)
    await check_quota(session, user, JobType.GENERATE_REPORT.value)

    job = await enqueue(
        session,
        JobType.GENERATE_REPORT,
        {
            "inspection_id": str(inspection_id),
            "user_id": str(user_id),
            "format": fmt,
            "recipient_email": recipient or "",
        },
        user_id=user_id,
        inspection_id=inspection_id,
    )
    logger.info(
        "report_queued",
        inspection_id=str(inspection_id),
        job_id=str(job.id),
        format=fmt,
        has_recipient=recipient is not None,
    )
    return job


async def generate_report(
    session: AsyncSession,
    inspection_id: UUID,
    user_id: UUID,
    fmt: str,
    storage: Storage | None = None,
) -> ReportModel:
    """Render, store and record a report. Runs inside the worker."""
    op = "reports.generate"
    fmt = parse_format(fmt, op)
    storage = storage or get_storage()

    inspection = await get_inspection(session, inspection_id, user_id)
    if inspection.status not in (InspectionStatus.REVIEW.value, InspectionStatus.COMPLETED.value):
        raise invalid(STATUS_MESSAGE, op=op)

    data = await prepare_report_data(session, inspection_id, user_id, storage)
    content = await asyncio.to_thread(RENDERERS[fmt], data)

    report_id = uuid4()
    key = report_key(inspection_id, report_id, fmt)
    await storage.put(key, content, CONTENT_TYPES[fmt])

    report = ReportModel(
        id=report_id,
        inspection_id=inspection_id,
        user_id=user_id,
        violation_count=len(data.violations),
    )
    if fmt == ReportFormat.PDF.value:
        report.pdf_storage_key = key
    else:
        report.docx_storage_key = key
    session.add(report)
    try:
        await session.flush()
    except Exception:
        await storage.delete(key)
        raise

    logger.info(
        "report_generated",
        report_id=str(report_id),
        inspection_id=str(inspection_id),
        format=fmt,
        size_bytes=len(content),
        violations=len(data.violations),
    )
    return report


async def get_report(session: AsyncSession, report_id: UUID, user_id: UUID) -> ReportModel:
    report = await session.scalar(
        select(ReportModel).where(ReportModel.id == report_id, ReportModel.user_id == user_id)
    )
    if report is None:
        raise not_found("Report", report_id, op="reports.get")
    return report


async def list_reports(
    session: AsyncSession, user_id: UUID, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
) -> Page[ReportSummary]:
    total = await session.scalar(
        select(func.count()).select_from(ReportModel).where(ReportModel.user_id == user_id)
    ) or 0
    result: Page[ReportSummary] = Page(items=[], total=total, page=page, page_size=page_size)
    rows = await session.execute(
        select(ReportModel, InspectionModel.title)
        .join(InspectionModel, InspectionModel.id == ReportModel.inspection_id)
        .where(ReportModel.user_id == user_id)
        .order_by(ReportModel.generated_at.desc())
        .limit(page_size)
        .offset(result.offset)
    )
    result.items = [ReportSummary(report=r, inspection_title=title) for r, title in rows.all()]
    return result


async def list_inspection_reports(
    session: AsyncSession, inspection_id: UUID, user_id: UUID
) -> list[ReportModel]:
    await get_inspection(session, inspection_id, user_id)
    rows = await session.execute(
        select(ReportModel)
        .where(ReportModel.inspection_id == inspection_id, ReportModel.user_id == user_id)
        .order_by(ReportModel.generated_at.desc())
    )
    return list(rows.scalars())


def _storage_key(report: ReportModel, fmt: str, op: str) -> str:
    key = report.storage_key_for(fmt)
    if not key:
        raise LukautError(ENOTFOUND, f"{fmt} version not available for this report", op=op)
    return key


async def download_report(
    session: AsyncSession, report_id: UUID, user_id: UUID, fmt: str | None
) -> ReportFile:
    op = "reports.download"
    fmt = parse_format(fmt or ReportFormat.PDF.value, op)
    report = await get_report(session, report_id, user_id)
    data, _ = await get_storage().get(_storage_key(report, fmt, op))
    logger.info("report_downloaded", report_id=str(report_id), format=fmt)
    return ReportFile(
        data=data,
        filename=f"report-{str(report.id)[:8]}.{fmt}",
        content_type=CONTENT_TYPES[fmt],
    )


async def report_url(
    session: AsyncSession, report_id: UUID, user_id: UUID, fmt: str | None, ttl_seconds: int | None = None
) -> str:
    """Signed download URL for one format of a report."""
    op = "reports.url"
    fmt = parse_format(fmt or ReportFormat.PDF.value, op)
    report = await get_report(session, report_id, user_id)
    return get_storage().url(_storage_key(report, fmt, op), ttl_seconds)
