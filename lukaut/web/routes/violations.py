"""Violation routes.

Routes:
- POST /inspections/{id}/violations - Add a violation by hand
- PUT /violations/{id} - Edit description, severity, notes or photo
- PUT /violations/{id}/status - Confirm, reject or reset to pending
- POST /inspections/{id}/violations/batch-status - JSON batch status change
- DELETE /violations/{id} - Delete
- GET /violations/{id}/card - Card partial (``?edit=1`` for the edit form)
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import HTMLResponse, Response

from lukaut.db.connection import get_session
from lukaut.db.models import UserModel
from lukaut.images.service import list_images
from lukaut.violations.service import (
    ViolationParams,
    batch_update_status,
    create_violation,
    delete_violation,
    get_violation,
    list_linked_regulations,
    update_violation,
    update_violation_status,
)
from lukaut.web.auth import require_user
from lukaut.web.dependencies import form_values, is_htmx, parse_uuid, redirect, render
from lukaut.web.models import BatchStatusRequest, BatchStatusResponse

router = APIRouter(tags=["violations"])

VIOLATION_FIELDS = ("description", "severity", "inspector_notes")
UPDATED_EVENT = {"HX-Trigger": "violationUpdated"}


def _params(form) -> ViolationParams:
    return ViolationParams(**form_values(form, VIOLATION_FIELDS), image_id=parse_uuid(form.get("image_id")))


async def _card(
    request: Request,
    violation_id: UUID,
    user: UserModel,
    edit: bool = False,
    headers: dict[str, str] | None = None,
):
    async with get_session() as session:
        violation = await get_violation(session, violation_id, user.id)
        regulations = await list_linked_regulations(session, violation_id)
        images = await list_images(session, violation.inspection_id, user.id) if edit else []
    return render(
        request,
        "violations/_card.html",
        {"violation": violation, "regulations": regulations, "edit": edit, "images": images},
        headers=headers,
    )


@router.post("/inspections/{inspection_id}/violations")
async def create_violation_route(
    request: Request, inspection_id: UUID, user: UserModel = Depends(require_user)
):
    params = _params(await request.form())
    async with get_session() as session:
        violation = await create_violation(session, inspection_id, user.id, params)

    if not is_htmx(request):
        return redirect(request, f"/inspections/{inspection_id}")
    return await _card(request, violation.id, user, headers=UPDATED_EVENT)


@router.put("/violations/{violation_id}", response_class=HTMLResponse)
async def update_violation_route(
    request: Request, violation_id: UUID, user: UserModel = Depends(require_user)
):
    params = _params(await request.form())
    async with get_session() as session:
        await update_violation(session, violation_id, user.id, params)
    return await _card(request, violation_id, user, headers=UPDATED_EVENT)


@router.put("/violations/{violation_id}/status", response_class=HTMLResponse)
async def update_violation_status_route(
    request: Request,
    violation_id: UUID,
    status: str = Form(...),
    user: UserModel = Depends(require_user),
):
    async with get_session() as session:
        await update_violation_status(session, violation_id, user.id, status)
    return await _card(request, violation_id, user, headers=UPDATED_EVENT)


@router.post("/inspections/{inspection_id}/violations/batch-status", response_model=BatchStatusResponse)
async def batch_status(
    inspection_id: UUID,
    body: BatchStatusRequest,
    user: UserModel = Depends(require_user),
):
    """Set one status on many violations of an inspection."""
    async with get_session() as session:
        updated = await batch_update_status(
            session, inspection_id, user.id, body.violation_ids, body.status
        )
    return BatchStatusResponse(updated=updated, status=body.status)


@router.delete("/violations/{violation_id}")
async def delete_violation_route(
    request: Request, violation_id: UUID, user: UserModel = Depends(require_user)
):
    async with get_session() as session:
        inspection_id = await delete_violation(session, violation_id, user.id)
    if not is_htmx(request):
        return redirect(request, f"/inspections/{inspection_id}")
    # Empty body removes the card from the page
    return Response(status_code=200, headers=UPDATED_EVENT)


@router.get("/violations/{violation_id}/card", response_class=HTMLResponse)
async def violation_card(
    request: Request,
    violation_id: UUID,
    edit: bool = Query(False),
    user: UserModel = Depends(require_user),
):
    return await _card(request, violation_id, user, edit=edit)
