"""Violation records attached to inspections.

Ownership is always checked through the parent inspection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.db.models import (
    ImageModel,
    InspectionModel,
    RegulationModel,
    ViolationModel,
    ViolationRegulationModel,
)
from lukaut.errors import ValidationError, invalid, not_found
from lukaut.inspections.service import get_inspection
from lukaut.models import Confidence, ViolationSeverity, ViolationStatus
from lukaut.utils.validation import clean

logger = structlog.get_logger(__name__)

MAX_DESCRIPTION_LENGTH = 1000


@dataclass(slots=True)
class ViolationParams:
    """Manual violation fields. None on update keeps the stored value."""

    description: str | None = None
    severity: str | None = None
    inspector_notes: str | None = None
    image_id: UUID | None = None


@dataclass(slots=True)
class DetectedViolation:
    """A violation reported by an image analyzer."""

    description: str
    severity: str
    confidence: str
    location: str | None = None
    bounding_box: dict | None = None
    regulation_numbers: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LinkedRegulation:
    link: ViolationRegulationModel
    regulation: RegulationModel


def _validate(params: ViolationParams, partial: bool, op: str) -> None:
    fields: dict[str, str] = {}
    if not partial or params.description is not None:
        description = clean(params.description)
        if not description:
            fields["description"] = "Description is required"
        elif len(description) > MAX_DESCRIPTION_LENGTH:
            fields["description"] = f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less"
    if not partial or params.severity is not None:
        try:
            ViolationSeverity(params.severity)
        except ValueError:
            fields["severity"] = f"Invalid severity: {params.severity}"
    if fields:
        raise ValidationError(fields, op=op)


async def get_violation(session: AsyncSession, violation_id: UUID, user_id: UUID) -> ViolationModel:
    result = await session.execute(
        select(ViolationModel)
        .join(InspectionModel, InspectionModel.id == ViolationModel.inspection_id)
        .where(ViolationModel.id == violation_id, InspectionModel.user_id == user_id)
    )
    violation = result.scalar_one_or_none()
    if violation is None:
        raise not_found("Violation", violation_id, op="violations.get")
    return violation


async def list_violations(
    session: AsyncSession, inspection_id: UUID, user_id: UUID, status: str | None = None
) -> list[ViolationModel]:
    """Violations of one inspection in review order."""
    await get_inspection(session, inspection_id, user_id)
    stmt = select(ViolationModel).where(ViolationModel.inspection_id == inspection_id)
    if status is not None:
        stmt = stmt.where(ViolationModel.status == status)
    rows = await session.execute(
        stmt.order_by(ViolationModel.sort_order, ViolationModel.created_at)
    )
    return list(rows.scalars())


async def _next_sort_order(session: AsyncSession, inspection_id: UUID) -> int:
    current = await session.scalar(
        select(func.max(ViolationModel.sort_order)).where(
            ViolationModel.inspection_id == inspection_id
        )
    )
    return (current or 0) + 1


async def _check_image(session: AsyncSession, image_id: UUID, inspection_id: UUID, op: str) -> None:
    image = await session.get(ImageModel, image_id)
    if image is None:
        raise not_found("Image", image_id, op=op)
    if image.inspection_id != inspection_id:
        raise invalid("Image does not belong to this inspection", op=op)


async def create_violation(
    session: AsyncSession, inspection_id: UUID, user_id: UUID, params: ViolationParams
) -> ViolationModel:
    """Add a violation by hand. It starts pending like AI findings."""
    op = "violations.create"
    _validate(params, partial=False, op=op)
    await get_inspection(session, inspection_id, user_id)
    if params.image_id is not None:
        await _check_image(session, params.image_id, inspection_id, op)

    violation = ViolationModel(
        inspection_id=inspection_id,
        image_id=params.image_id,
        description=clean(params.description),
        status=ViolationStatus.PENDING.value,
        severity=ViolationSeverity(params.severity).value,
        inspector_notes=clean(params.inspector_notes),
        sort_order=await _next_sort_order(session, inspection_id),
    )
    session.add(violation)
    await session.flush()
    logger.info("violation_created", violation_id=str(violation.id), inspection_id=str(inspection_id))
    return violation


async def create_detected_violations(
    session: AsyncSession,
    inspection_id: UUID,
    image_id: UUID | None,
    detected: list[DetectedViolation],
) -> list[ViolationModel]:
    """Record analyzer findings for one image as pending violations.

    Regulation numbers that match a known standard are linked, the first one
    as primary. Callers have already checked ownership.
    """
    start = await _next_sort_order(session, inspection_id)
    created = []
    for offset, item in enumerate(detected):
        ai_description = item.description
        if item.location:
            ai_description = f"{item.description} (Location: {item.location})"
        try:
            severity = ViolationSeverity(item.severity).value
        except ValueError:
            severity = ViolationSeverity.OTHER.value
        try:
            confidence = Confidence(item.confidence).value
        except ValueError:
            confidence = Confidence.LOW.value

        violation = ViolationModel(
            inspection_id=inspection_id,
            image_id=image_id,
            description=item.description[:MAX_DESCRIPTION_LENGTH],
            ai_description=ai_description,
            confidence=confidence,
            bounding_box=item.bounding_box,
            status=ViolationStatus.PENDING.value,
            severity=severity,
            sort_order=start + offset,
        )
        session.add(violation)
        await session.flush()

        if item.regulation_numbers:
            rows = await session.execute(
                select(RegulationModel).where(
                    RegulationModel.standard_number.in_(item.regulation_numbers)
                )
            )
            by_number = {r.standard_number: r for r in rows.scalars()}
            for index, number in enumerate(dict.fromkeys(item.regulation_numbers)):
                regulation = by_number.get(number)
                if regulation is None:
                    continue
                session.add(
                    ViolationRegulationModel(
                        violation_id=violation.id,
                        regulation_id=regulation.id,
                        is_primary=index == 0,
                    )
                )
        created.append(violation)

    await session.flush()
    return created


async def update_violation(
    session: AsyncSession, violation_id: UUID, user_id: UUID, params: ViolationParams
) -> ViolationModel:
    op = "violations.update"
    _validate(params, partial=True, op=op)
    violation = await get_violation(session, violation_id, user_id)

    if params.description is not None:
        violation.description = clean(params.description)
    if params.severity is not None:
        violation.severity = ViolationSeverity(params.severity).value
    if params.inspector_notes is not None:
        violation.inspector_notes = clean(params.inspector_notes)
    if params.image_id is not None:
        await _check_image(session, params.image_id, violation.inspection_id, op)
        violation.image_id = params.image_id

    await session.flush()
    logger.info("violation_updated", violation_id=str(violation_id), user_id=str(user_id))
    return violation


def parse_status(status: str | None, op: str) -> ViolationStatus:
    try:
        return ViolationStatus(status)
    except ValueError:
        raise invalid(f"invalid status: {status}", op=op) from None


async def update_violation_status(
    session: AsyncSession, violation_id: UUID, user_id: UUID, status: str
) -> ViolationModel:
    op = "violations.update_status"
    new_status = parse_status(status, op)
    violation = await get_violation(session, violation_id, user_id)
    violation.status = new_status.value
    await session.flush()
    logger.info(
        "violation_status_updated",
        violation_id=str(violation_id),
        user_id=str(user_id),
        status=new_status.value,
    )
    return violation


async def batch_update_status(
    session: AsyncSession,
    inspection_id: UUID,
    user_id: UUID,
    violation_ids: list[UUID],
    status: str,
) -> int:
    """Set the status of several violations of one inspection; returns the count updated."""
    op = "violations.batch_update_status"
    new_status = parse_status(status, op)
    await get_inspection(session, inspection_id, user_id)
    if not violation_ids:
        return 0
    result = await session.execute(
        update(ViolationModel)
        .where(
            ViolationModel.inspection_id == inspection_id,
            ViolationModel.id.in_(violation_ids),
        )
        .values(status=new_status.value)
        .execution_options(synchronize_session=False)
    )
    logger.info(
        "violation_status_batch_updated",
        inspection_id=str(inspection_id),
        status=new_status.value,
        count=result.rowcount,
    )
    return result.rowcount


async def delete_violation(session: AsyncSession, violation_id: UUID, user_id: UUID) -> UUID:
    """Delete a violation; returns its inspection id."""
    violation = await get_violation(session, violation_id, user_id)
    inspection_id = violation.inspection_id
    await session.delete(violation)
    await session.flush()
    logger.info("violation_deleted", violation_id=str(violation_id), user_id=str(user_id))
    return inspection_id


async def list_linked_regulations(
    session: AsyncSession, violation_id: UUID
) -> list[LinkedRegulation]:
    """Regulations linked to a violation, primary first."""
    rows = await session.execute(
        select(ViolationRegulationModel, RegulationModel)
        .join(RegulationModel, RegulationModel.id == ViolationRegulationModel.regulation_id)
        .where(ViolationRegulationModel.violation_id == violation_id)
        .order_by(
            ViolationRegulationModel.is_primary.desc(),
            ViolationRegulationModel.relevance_score.desc(),
            RegulationModel.standard_number,
        )
    )
    return [LinkedRegulation(link=link, regulation=reg) for link, reg in rows.all()]
