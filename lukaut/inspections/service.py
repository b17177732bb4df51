"""Inspection management and the inspection lifecycle.

Status moves through draft -> analyzing -> review -> completed. Users may
only move an inspection between review and completed; the analyzing
transitions are driven by the analysis job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.accounts.quota import check_quota
from lukaut.accounts.service import get_user
from lukaut.clients.service import get_client
from lukaut.core.storage import get_storage
from lukaut.db.models import (
    ClientModel,
    ImageModel,
    InspectionModel,
    JobModel,
    ReportModel,
    ViolationModel,
    utcnow,
)
from lukaut.errors import ValidationError, conflict, invalid, not_found
from lukaut.jobs.queue import ANALYSIS_IN_PROGRESS_MESSAGE, enqueue, has_active_analysis
from lukaut.models import (
    DEFAULT_PAGE_SIZE,
    USER_SETTABLE_STATUSES,
    ImageAnalysisStatus,
    InspectionStatus,
    JobType,
    Page,
    ViolationStatus,
    can_transition,
)
from lukaut.sites.service import get_site
from lukaut.utils.validation import clean, length_error, parse_date, required_error

logger = structlog.get_logger(__name__)

MAX_TITLE_LENGTH = 200
MAX_FUTURE_DAYS = 365


@dataclass(slots=True)
class InspectionParams:
    """Inspection fields from a form. None on update keeps the stored value."""

    title: str | None = None
    inspection_date: str | date | None = None
    weather_conditions: str | None = None
    temperature: str | None = None
    inspector_notes: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    client_id: UUID | None = None
    site_id: UUID | None = None


@dataclass(slots=True)
class AnalysisStatus:
    """State of the analysis panel on the inspection page."""

    inspection_id: UUID
    status: str
    can_analyze: bool
    is_analyzing: bool
    has_images: bool
    pending_images: int
    total_images: int
    analyzed_images: int
    violation_count: int
    message: str

    @property
    def polling_enabled(self) -> bool:
        return self.is_analyzing


@dataclass(slots=True)
class InspectionSummary:
    """Inspection plus the counts shown in listings."""

    inspection: InspectionModel
    client_name: str | None
    violation_count: int
    image_count: int


_REQUIRED_TEXT = {
    "title": "Title",
    "address_line1": "Address",
    "city": "City",
    "state": "State",
    "postal_code": "Postal code",
}

_TEXT_FIELDS = (
    "title",
    "weather_conditions",
    "temperature",
    "inspector_notes",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "postal_code",
)


def _validate(params: InspectionParams, partial: bool, op: str) -> date | None:
    """Validate fields and return the parsed inspection date (None if not given)."""
    fields: dict[str, str] = {}
    for name, label in _REQUIRED_TEXT.items():
        value = getattr(params, name)
        if partial and value is None:
            continue
        max_length = MAX_TITLE_LENGTH if name == "title" else None
        if err := required_error(value, label, max_length=max_length):
            fields[name] = err

    if err := length_error(clean(params.weather_conditions), "Weather conditions", 100):
        fields["weather_conditions"] = err
    if err := length_error(clean(params.temperature), "Temperature", 50):
        fields["temperature"] = err

    parsed_date = None
    if not partial or params.inspection_date is not None:
        parsed_date = parse_date(params.inspection_date)
        if parsed_date is None:
            fields["inspection_date"] = "A valid inspection date is required"
        elif parsed_date > date.today() + timedelta(days=MAX_FUTURE_DAYS):
            fields["inspection_date"] = "Inspection date cannot be more than one year in the future"

    if fields:
        raise ValidationError(fields, op=op)
    return parsed_date


# ============================================================================
# Queries
# ============================================================================


async def get_inspection(
    session: AsyncSession, inspection_id: UUID, user_id: UUID
) -> InspectionModel:
    result = await session.execute(
        select(InspectionModel).where(
            InspectionModel.id == inspection_id, InspectionModel.user_id == user_id
        )
    )
    inspection = result.scalar_one_or_none()
    if inspection is None:
        raise not_found("Inspection", inspection_id, op="inspections.get")
    return inspection


async def count_violations(
    session: AsyncSession, inspection_id: UUID, status: str | None = None
) -> int:
    stmt = (
        select(func.count())
        .select_from(ViolationModel)
        .where(ViolationModel.inspection_id == inspection_id)
    )
    if status is not None:
        stmt = stmt.where(ViolationModel.status == status)
    return await session.scalar(stmt) or 0


async def count_images(
    session: AsyncSession, inspection_id: UUID, analysis_status: str | None = None
) -> int:
    stmt = (
        select(func.count())
        .select_from(ImageModel)
        .where(ImageModel.inspection_id == inspection_id)
    )
    if analysis_status is not None:
        stmt = stmt.where(ImageModel.analysis_status == analysis_status)
    return await session.scalar(stmt) or 0


async def list_inspections(
    session: AsyncSession,
    user_id: UUID,
    page: int = 1,
    status: str | None = None,
    client_id: UUID | None = None,
    q: str | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Page[InspectionSummary]:
    """Newest inspections first, with client name and counts."""
    conditions = [InspectionModel.user_id == user_id]
    if status:
        conditions.append(InspectionModel.status == status)
    if client_id is not None:
        conditions.append(InspectionModel.client_id == client_id)
    if q := clean(q):
        conditions.append(func.lower(InspectionModel.title).like(f"%{q.lower()}%"))

    total = await session.scalar(
        select(func.count()).select_from(InspectionModel).where(*conditions)
    ) or 0
    result: Page[InspectionSummary] = Page(items=[], total=total, page=page, page_size=page_size)

    violation_count = (
        select(func.count())
        .select_from(ViolationModel)
        .where(ViolationModel.inspection_id == InspectionModel.id)
        .scalar_subquery()
    )
    image_count = (
        select(func.count())
        .select_from(ImageModel)
        .where(ImageModel.inspection_id == InspectionModel.id)
        .scalar_subquery()
    )
    rows = await session.execute(
        select(InspectionModel, ClientModel.name, violation_count, image_count)
        .outerjoin(ClientModel, ClientModel.id == InspectionModel.client_id)
        .where(*conditions)
        .order_by(InspectionModel.inspection_date.desc(), InspectionModel.created_at.desc())
        .limit(page_size)
        .offset(result.offset)
    )
    result.items = [
        InspectionSummary(
            inspection=row[0], client_name=row[1], violation_count=row[2], image_count=row[3]
        )
        for row in rows.all()
    ]
    return result


async def dashboard_stats(session: AsyncSession, user_id: UUID) -> dict[str, int]:
    """Inspection counts per status plus violations awaiting review."""
    rows = await session.execute(
        select(InspectionModel.status, func.count())
        .where(InspectionModel.user_id == user_id)
        .group_by(InspectionModel.status)
    )
    stats = {s.value: 0 for s in InspectionStatus}
    for status, count in rows.all():
        stats[status] = count
    stats["total"] = sum(stats[s.value] for s in InspectionStatus)

    stats["pending_violations"] = await session.scalar(
        select(func.count())
        .select_from(ViolationModel)
        .join(InspectionModel, InspectionModel.id == ViolationModel.inspection_id)
        .where(
            InspectionModel.user_id == user_id,
            ViolationModel.status == ViolationStatus.PENDING.value,
        )
    ) or 0
    return stats


# ============================================================================
# Mutations
# ============================================================================


async def _check_references(
    session: AsyncSession, user_id: UUID, params: InspectionParams
) -> None:
    if params.client_id is not None:
        await get_client(session, params.client_id, user_id)
    if params.site_id is not None:
        await get_site(session, params.site_id, user_id)


async def create_inspection(
    session: AsyncSession, user_id: UUID, params: InspectionParams
) -> InspectionModel:
    inspection_date = _validate(params, partial=False, op="inspections.create")
    await _check_references(session, user_id, params)

    inspection = InspectionModel(
        user_id=user_id,
        status=InspectionStatus.DRAFT.value,
        inspection_date=inspection_date,
        client_id=params.client_id,
        site_id=params.site_id,
        **{name: clean(getattr(params, name)) for name in _TEXT_FIELDS},
    )
    session.add(inspection)
    await session.flush()
    logger.info("inspection_created", inspection_id=str(inspection.id), user_id=str(user_id))
    return inspection


async def update_inspection(
    session: AsyncSession,
    inspection_id: UUID,
    user_id: UUID,
    params: InspectionParams,
    clear_client: bool = False,
) -> InspectionModel:
    """Partial update. Refused while analysis is running."""
    inspection = await get_inspection(session, inspection_id, user_id)
    if inspection.status == InspectionStatus.ANALYZING.value:
        raise invalid(
            "Inspection cannot be edited while analysis is in progress",
            op="inspections.update",
        )

    inspection_date = _validate(params, partial=True, op="inspections.update")
    await _check_references(session, user_id, params)

    for name in _TEXT_FIELDS:
        value = getattr(params, name)
        if value is not None:
            setattr(inspection, name, clean(value))
    if inspection_date is not None:
        inspection.inspection_date = inspection_date
    if params.client_id is not None:
        inspection.client_id = params.client_id
    elif clear_client:
        inspection.client_id = None
    if params.site_id is not None:
        inspection.site_id = params.site_id

    await session.flush()
    logger.info("inspection_updated", inspection_id=str(inspection_id), user_id=str(user_id))
    return inspection


async def delete_inspection(session: AsyncSession, inspection_id: UUID, user_id: UUID) -> None:
    """Delete an inspection along with its stored photos and report files."""
    inspection = await get_inspection(session, inspection_id, user_id)

    image_rows = await session.execute(
        select(ImageModel.storage_key, ImageModel.thumbnail_key).where(
            ImageModel.inspection_id == inspection_id
        )
    )
    report_rows = await session.execute(
        select(ReportModel.pdf_storage_key, ReportModel.docx_storage_key).where(
            ReportModel.inspection_id == inspection_id
        )
    )
    keys = [k for row in (*image_rows.all(), *report_rows.all()) for k in row if k]

    await session.delete(inspection)
    await session.flush()

    storage = get_storage()
    for key in keys:
        await storage.delete(key)

    logger.info(
        "inspection_deleted",
        inspection_id=str(inspection_id),
        user_id=str(user_id),
        files_removed=len(keys),
    )


async def transition(
    session: AsyncSession, inspection: InspectionModel, target: InspectionStatus | str
) -> InspectionModel:
    """Move an inspection to ``target`` if the state machine allows it."""
    target = InspectionStatus(target)
    current = inspection.status
    if not can_transition(current, target):
        raise invalid(
            f"cannot transition from {current} to {target.value}",
            op="inspections.transition",
        )
    inspection.status = target.value
    inspection.updated_at = utcnow()
    await session.flush()
    logger.info(
        "inspection_status_changed",
        inspection_id=str(inspection.id),
        old_status=current,
        new_status=target.value,
    )
    return inspection


async def update_status(
    session: AsyncSession, inspection_id: UUID, user_id: UUID, status: str
) -> InspectionModel:
    """User-requested status change: complete a reviewed inspection or reopen it."""
    try:
        target = InspectionStatus(status)
    except ValueError:
        raise invalid(f"invalid status: {status}", op="inspections.update_status") from None
    if target not in USER_SETTABLE_STATUSES:
        raise invalid(f"invalid status: {status}", op="inspections.update_status")

    inspection = await get_inspection(session, inspection_id, user_id)
    return await transition(session, inspection, target)


# ============================================================================
# Analysis
# ============================================================================


def determine_analysis_action(
    status: str, pending_images: int, total_images: int, job_in_progress: bool
) -> tuple[bool, str]:
    """Return (can_analyze, message) for the analysis panel."""
    if status == InspectionStatus.DRAFT.value:
        if total_images == 0:
            return False, "Upload photos to begin analysis"
        if pending_images > 0 and not job_in_progress:
            noun = "image" if pending_images == 1 else "images"
            return True, f"Ready to analyze {pending_images} {noun}"
        if job_in_progress:
            return False, "Analyzing images..."
        return False, "All images have been analyzed"

    if status == InspectionStatus.ANALYZING.value:
        return False, "Analyzing images..."

    if status == InspectionStatus.REVIEW.value:
        if pending_images > 0 and not job_in_progress:
            noun = "new image" if pending_images == 1 else "new images"
            return True, f"Ready to analyze {pending_images} {noun}"
        if job_in_progress:
            return False, "Analyzing new images..."
        return False, "Analysis complete"

    if status == InspectionStatus.COMPLETED.value:
        return False, "Inspection finalized"

    return False, ""


async def get_analysis_status(
    session: AsyncSession, inspection_id: UUID, user_id: UUID
) -> AnalysisStatus:
    inspection = await get_inspection(session, inspection_id, user_id)
    total = await count_images(session, inspection_id)
    pending = await count_images(session, inspection_id, ImageAnalysisStatus.PENDING.value)
    analyzed = await count_images(session, inspection_id, ImageAnalysisStatus.COMPLETED.value)
    violations = await count_violations(session, inspection_id)
    in_progress = await has_active_analysis(session, inspection_id)

    can_analyze, message = determine_analysis_action(
        inspection.status, pending, total, in_progress
    )
    return AnalysisStatus(
        inspection_id=inspection_id,
        status=inspection.status,
        can_analyze=can_analyze,
        is_analyzing=in_progress or inspection.status == InspectionStatus.ANALYZING.value,
        has_images=total > 0,
        pending_images=pending,
        total_images=total,
        analyzed_images=analyzed,
        violation_count=violations,
        message=message,
    )


async def trigger_analysis(session: AsyncSession, inspection_id: UUID, user_id: UUID) -> JobModel:
    """Queue an analysis job for the inspection's pending images.

    Raises:
        LukautError(EINVALID): Wrong status, or no pending images
        LukautError(ECONFLICT): An analysis job is already pending or running
        LukautError(EPAYMENT): Monthly analysis quota used up
    """
    op = "inspections.trigger_analysis"
    inspection = await get_inspection(session, inspection_id, user_id)
    if inspection.status not in (InspectionStatus.DRAFT.value, InspectionStatus.REVIEW.value):
        raise invalid("Inspection status does not allow analysis", op=op)

    pending = await count_images(session, inspection_id, ImageAnalysisStatus.PENDING.value)
    if pending == 0:
        raise invalid("No images to analyze", op=op)

    if await has_active_analysis(session, inspection_id):
        raise conflict(ANALYSIS_IN_PROGRESS_MESSAGE, op=op)

    user = await get_user(session, user_id)
    await check_quota(session, user, JobType.ANALYZE_INSPECTION.value)

    job = await enqueue(
        session,
        JobType.ANALYZE_INSPECTION,
        {"inspection_id": str(inspection_id), "user_id": str(user_id)},
        user_id=user_id,
        inspection_id=inspection_id,
    )
    logger.info(
        "analysis_queued",
        inspection_id=str(inspection_id),
        job_id=str(job.id),
        pending_images=pending,
    )
    return job
