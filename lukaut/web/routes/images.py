"""Inspection photo routes.

Routes:
- POST /inspections/{id}/images - Multipart upload of one or more photos
- GET /inspections/{id}/images - Photo grid partial
- DELETE /inspections/{id}/images/{image_id} - Remove a photo
- GET /images/{id}/thumbnail, GET /images/{id}/original - Redirect to a signed URL
"""

from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.datastructures import UploadFile

from lukaut.db.connection import get_session
from lukaut.db.models import UserModel
from lukaut.errors import EINVALID, ETOOLARGE, LukautError, invalid, too_large
from lukaut.images.service import delete_image, get_image, image_url, list_images, upload_image
from lukaut.inspections.service import get_analysis_status, get_inspection
from lukaut.web.auth import require_user
from lukaut.web.dependencies import is_htmx, redirect, render

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["images"])

MAX_FORM_SIZE = 32 * 1024 * 1024  # 32 MB per request
IMAGE_URL_TTL = 15 * 60


async def _grid(request: Request, inspection_id: UUID, user: UserModel, errors=None, headers=None):
    async with get_session() as session:
        inspection = await get_inspection(session, inspection_id, user.id)
        images = await list_images(session, inspection_id, user.id)
        analysis = await get_analysis_status(session, inspection_id, user.id)
    return render(
        request,
        "inspections/_images.html",
        {
            "inspection": inspection,
            "images": images,
            "analysis": analysis,
            "upload_errors": errors or [],
        },
        headers=headers,
    )


@router.post("/inspections/{inspection_id}/images")
async def upload_images(request: Request, inspection_id: UUID, user: UserModel = Depends(require_user)):
    """Upload photos.

    Each file is validated on its own; bad files are reported next to the
    grid while the good ones are kept.
    """
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_FORM_SIZE:
        raise too_large("Upload exceeds the 32 MB request limit", op="images.upload")

    form = await request.form()
    files = [f for f in form.getlist("files") if isinstance(f, UploadFile)]
    if not files:
        raise invalid("Choose at least one photo to upload", op="images.upload")

    uploaded = 0
    errors: list[str] = []
    async with get_session() as session:
        for upload in files:
            data = await upload.read()
            try:
                await upload_image(session, inspection_id, user.id, upload.filename, data)
                uploaded += 1
            except LukautError as exc:
                if exc.code not in (EINVALID, ETOOLARGE):
                    raise
                errors.append(f"{upload.filename or 'file'}: {exc.message}")
            finally:
                await upload.close()

    logger.info("images_uploaded", inspection_id=str(inspection_id), count=uploaded, rejected=len(errors))

    headers = {"HX-Trigger": "imagesUploaded"} if uploaded else None
    if not is_htmx(request):
        return redirect(request, f"/inspections/{inspection_id}")
    return await _grid(request, inspection_id, user, errors=errors, headers=headers)


@router.get("/inspections/{inspection_id}/images", response_class=HTMLResponse)
async def images_grid(request: Request, inspection_id: UUID, user: UserModel = Depends(require_user)):
    return await _grid(request, inspection_id, user)


@router.delete("/inspections/{inspection_id}/images/{image_id}")
async def delete_image_route(
    request: Request,
    inspection_id: UUID,
    image_id: UUID,
    user: UserModel = Depends(require_user),
):
    async with get_session() as session:
        await delete_image(session, inspection_id, image_id, user.id)
    if not is_htmx(request):
        return redirect(request, f"/inspections/{inspection_id}")
    return await _grid(request, inspection_id, user)


@router.get("/images/{image_id}/thumbnail")
async def image_thumbnail(image_id: UUID, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        image = await get_image(session, image_id, user.id)
    return RedirectResponse(url=image_url(image, "thumbnail", IMAGE_URL_TTL), status_code=302)


@router.get("/images/{image_id}/original")
async def image_original(image_id: UUID, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        image = await get_image(session, image_id, user.id)
    return RedirectResponse(url=image_url(image, "original", IMAGE_URL_TTL), status_code=302)
