"""analyze_inspection job.

Each pending photo is sent to the configured AI provider. Findings become
pending violations linked to the regulations the provider suggested, or to
the best regulation matches when it suggested none. A photo the provider
cannot process is marked failed and the rest carry on; retryable provider
errors fail the whole attempt so the job runner tries again.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.ai.provider import (
    AIError,
    AIProvider,
    ImageAnalysisRequest,
    PotentialViolation,
    RegulationMatchRequest,
    get_provider,
)
from lukaut.ai.usage import IMAGE_ANALYSIS, record_usage
from lukaut.core.storage import get_storage
from lukaut.db.models import ImageModel, InspectionModel
from lukaut.errors import ENOTFOUND, LukautError
from lukaut.images.service import list_pending_images, set_analysis_status
from lukaut.inspections.service import count_violations, get_inspection, transition
from lukaut.jobs.handlers import FollowUp, PermanentError, register
from lukaut.models import ImageAnalysisStatus, InspectionStatus, JobType, can_transition
from lukaut.violations.service import DetectedViolation, create_detected_violations

logger = structlog.get_logger(__name__)

# Regulations linked per finding when the provider suggested none
FALLBACK_MATCHES = 3


def parse_ids(payload: dict[str, Any]) -> tuple[UUID, UUID]:
    try:
        return UUID(str(payload["inspection_id"])), UUID(str(payload["user_id"]))
    except (KeyError, ValueError) as exc:
        raise PermanentError(f"invalid payload: {exc}") from exc


async def to_detected(
    session: AsyncSession, provider: AIProvider, finding: PotentialViolation
) -> DetectedViolation:
    numbers = finding.suggested_regulations
    if not numbers:
        matches = await provider.match_regulations(
            session,
            RegulationMatchRequest(
                description=finding.description,
                category=finding.category,
                max_results=FALLBACK_MATCHES,
            ),
        )
        # Primary match first
        matches.sort(key=lambda m: not m.is_primary)
        numbers = [m.standard_number for m in matches]
    return DetectedViolation(
        description=finding.description,
        severity=finding.severity,
        confidence=finding.confidence,
        location=finding.location,
        bounding_box=finding.bounding_box,
        regulation_numbers=numbers,
    )


async def analyze_image(
    session: AsyncSession, provider: AIProvider, inspection: InspectionModel, image: ImageModel
) -> int | None:
    """Analyze one photo. Returns the number of violations created, or None if it failed."""
    log = logger.bind(inspection_id=str(inspection.id), image_id=str(image.id))
    await set_analysis_status(session, image.id, ImageAnalysisStatus.ANALYZING)

    try:
        data, _ = await get_storage().get(image.storage_key)
    except LukautError as exc:
        if exc.code != ENOTFOUND:
            raise
        log.warning("image_file_missing", storage_key=image.storage_key)
        await set_analysis_status(session, image.id, ImageAnalysisStatus.FAILED)
        return None

    request = ImageAnalysisRequest(
        image_data=data,
        content_type=image.content_type,
        context=inspection.inspector_notes,
        image_id=image.id,
        inspection_id=inspection.id,
        user_id=inspection.user_id,
    )
    try:
        result = await provider.analyze_image(request)
    except AIError as exc:
        if exc.retryable:
            raise
        log.warning("image_analysis_failed", kind=exc.kind, error=exc.message)
        await set_analysis_status(session, image.id, ImageAnalysisStatus.FAILED)
        return None

    if result.usage is not None:
        await record_usage(
            session, inspection.user_id, result.usage, IMAGE_ANALYSIS, inspection_id=inspection.id
        )

    detected = [await to_detected(session, provider, finding) for finding in result.violations]
    created = await create_detected_violations(session, inspection.id, image.id, detected) if detected else []
    await set_analysis_status(session, image.id, ImageAnalysisStatus.COMPLETED)
    log.info("image_analysis_completed", violations=len(created))
    return len(created)


async def analyze_inspection(session: AsyncSession, payload: dict[str, Any]) -> FollowUp | None:
    inspection_id, user_id = parse_ids(payload)
    log = logger.bind(inspection_id=str(inspection_id))

    try:
        inspection = await get_inspection(session, inspection_id, user_id)
    except LukautError as exc:
        if exc.code == ENOTFOUND:
            raise PermanentError(f"inspection not found: {inspection_id}") from exc
        raise

    # A retry finds the inspection already analyzing
    if inspection.status != InspectionStatus.ANALYZING.value:
        if not can_transition(inspection.status, InspectionStatus.ANALYZING):
            raise PermanentError(f"inspection in status {inspection.status} cannot be analyzed")
        await transition(session, inspection, InspectionStatus.ANALYZING)
        # Make the analyzing state visible to status polling while images are processed
        await session.commit()

    provider = get_provider()
    images = await list_pending_images(session, inspection_id)
    found = failed = 0
    for image in images:
        created = await analyze_image(session, provider, inspection, image)
        if created is None:
            failed += 1
        else:
            found += created

    await transition(session, inspection, InspectionStatus.REVIEW)
    log.info("analysis_completed", images=len(images), failed=failed, violations_found=found)
    return None


async def rollback_analysis(session: AsyncSession, payload: dict[str, Any]) -> None:
    """Move an inspection stuck in analyzing back to draft, or to review if it has violations."""
    try:
        inspection_id, user_id = parse_ids(payload)
    except PermanentError:
        return

    inspection = await session.scalar(
        select(InspectionModel).where(
            InspectionModel.id == inspection_id, InspectionModel.user_id == user_id
        )
    )
    if inspection is None or inspection.status != InspectionStatus.ANALYZING.value:
        return

    await session.execute(
        update(ImageModel)
        .where(
            ImageModel.inspection_id == inspection_id,
            ImageModel.analysis_status == ImageAnalysisStatus.ANALYZING.value,
        )
        .values(analysis_status=ImageAnalysisStatus.PENDING.value)
    )
    target = InspectionStatus.REVIEW if await count_violations(session, inspection_id) else InspectionStatus.DRAFT
    await transition(session, inspection, target)
    logger.warning("analysis_rolled_back", inspection_id=str(inspection_id), status=target.value)


handler = register(JobType.ANALYZE_INSPECTION, analyze_inspection, on_failure=rollback_analysis)
