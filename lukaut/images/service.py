"""Inspection photo upload, lookup and removal."""

from __future__ import annotations

import asyncio
from uuid import UUID, uuid4

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.core.storage import get_storage
from lukaut.db.models import ImageModel, InspectionModel, ViolationModel, utcnow
from lukaut.errors import forbidden, invalid, not_found, too_large
from lukaut.images.processing import detect_content_type, extension_for, process_image
from lukaut.inspections.service import get_inspection
from lukaut.models import ImageAnalysisStatus

logger = structlog.get_logger(__name__)

MAX_IMAGE_SIZE = 20 * 1024 * 1024  # 20 MB
MAX_FILENAME_LENGTH = 255


def image_key(inspection_id: UUID, image_id: UUID, extension: str) -> str:
    return f"inspections/{inspection_id}/images/{image_id}{extension}"


def thumbnail_key(inspection_id: UUID, image_id: UUID) -> str:
    return f"inspections/{inspection_id}/thumbnails/{image_id}.jpg"


async def upload_image(
    session: AsyncSession,
    inspection_id: UUID,
    user_id: UUID,
    filename: str | None,
    data: bytes,
) -> ImageModel:
    """Validate, store and record one uploaded photo.

    Raises:
        LukautError(EFORBIDDEN): Inspection is not accepting photos
        LukautError(EINVALID): Empty file or not a JPEG/PNG image
        LukautError(ETOOLARGE): Larger than 20 MB
    """
    op = "images.upload"
    inspection = await get_inspection(session, inspection_id, user_id)
    if not inspection.can_add_photos:
        raise forbidden("Photos can only be added while the inspection is in draft or review", op=op)

    if not data:
        raise invalid("File is empty", op=op)
    if len(data) > MAX_IMAGE_SIZE:
        raise too_large("Image exceeds the 20 MB size limit", op=op)

    content_type = detect_content_type(data)
    if content_type is None:
        raise invalid("Only JPEG and PNG images are supported", op=op)

    processed = await asyncio.to_thread(process_image, data, content_type)

    image_id = uuid4()
    original_key = image_key(inspection_id, image_id, extension_for(content_type))
    thumb_key = thumbnail_key(inspection_id, image_id)

    storage = get_storage()
    await storage.put(original_key, data, content_type)
    await storage.put(thumb_key, processed.thumbnail, "image/jpeg")

    image = ImageModel(
        id=image_id,
        inspection_id=inspection_id,
        storage_key=original_key,
        thumbnail_key=thumb_key,
        original_filename=(filename or "")[:MAX_FILENAME_LENGTH] or None,
        content_type=content_type,
        size_bytes=len(data),
        width=processed.width,
        height=processed.height,
        analysis_status=ImageAnalysisStatus.PENDING.value,
    )
    session.add(image)
    try:
        await session.flush()
    except Exception:
        await storage.delete(original_key)
        await storage.delete(thumb_key)
        raise

    logger.info(
        "image_uploaded",
        image_id=str(image_id),
        inspection_id=str(inspection_id),
        size_bytes=len(data),
        content_type=content_type,
    )
    return image


async def get_image(session: AsyncSession, image_id: UUID, user_id: UUID) -> ImageModel:
    """Fetch an image, checking ownership through its inspection."""
    result = await session.execute(
        select(ImageModel)
        .join(InspectionModel, InspectionModel.id == ImageModel.inspection_id)
        .where(ImageModel.id == image_id, InspectionModel.user_id == user_id)
    )
    image = result.scalar_one_or_none()
    if image is None:
        raise not_found("Image", image_id, op="images.get")
    return image


async def list_images(
    session: AsyncSession, inspection_id: UUID, user_id: UUID
) -> list[ImageModel]:
    await get_inspection(session, inspection_id, user_id)
    rows = await session.execute(
        select(ImageModel)
        .where(ImageModel.inspection_id == inspection_id)
        .order_by(ImageModel.created_at)
    )
    return list(rows.scalars())


async def delete_image(
    session: AsyncSession, inspection_id: UUID, image_id: UUID, user_id: UUID
) -> None:
    op = "images.delete"
    inspection = await get_inspection(session, inspection_id, user_id)
    if not inspection.can_add_photos:
        raise forbidden("Photos can only be removed while the inspection is in draft or review", op=op)

    result = await session.execute(
        select(ImageModel).where(
            ImageModel.id == image_id, ImageModel.inspection_id == inspection_id
        )
    )
    image = result.scalar_one_or_none()
    if image is None:
        raise not_found("Image", image_id, op=op)

    keys = [k for k in (image.storage_key, image.thumbnail_key) if k]
    await session.execute(
        update(ViolationModel).where(ViolationModel.image_id == image_id).values(image_id=None)
    )
    await session.delete(image)
    await session.flush()

    storage = get_storage()
    for key in keys:
        await storage.delete(key)
    logger.info("image_deleted", image_id=str(image_id), inspection_id=str(inspection_id))


async def list_pending_images(session: AsyncSession, inspection_id: UUID) -> list[ImageModel]:
    """Images still waiting for analysis. Callers have already checked ownership."""
    rows = await session.execute(
        select(ImageModel)
        .where(
            ImageModel.inspection_id == inspection_id,
            ImageModel.analysis_status == ImageAnalysisStatus.PENDING.value,
        )
        .order_by(ImageModel.created_at)
    )
    return list(rows.scalars())


async def set_analysis_status(
    session: AsyncSession, image_id: UUID, status: ImageAnalysisStatus
) -> None:
    values: dict = {"analysis_status": status.value}
    if status in (ImageAnalysisStatus.COMPLETED, ImageAnalysisStatus.FAILED):
        values["analysis_completed_at"] = utcnow()
    await session.execute(update(ImageModel).where(ImageModel.id == image_id).values(**values))


def image_url(image: ImageModel, variant: str = "original", ttl_seconds: int | None = None) -> str:
    """Signed download URL for the original photo or its thumbnail."""
    key = image.thumbnail_key if variant == "thumbnail" and image.thumbnail_key else image.storage_key
    return get_storage().url(key, ttl_seconds)
