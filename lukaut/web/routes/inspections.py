"""Inspection routes.

Routes:
- GET /inspections - Paged list, filterable by status, client and title
- GET /inspections/new, POST /inspections - Create
- GET /inspections/{id} - Detail page (photos, violations, analysis, reports)
- GET /inspections/{id}/edit, PUT|POST /inspections/{id} - Update
- DELETE /inspections/{id} - Delete with stored files
- PUT /inspections/{id}/status - Complete or reopen
- POST /inspections/{id}/analyze, GET /inspections/{id}/status - Analysis panel
- GET /inspections/{id}/review, GET /inspections/{id}/review/queue - Review queue
- PUT /inspections/{id}/review/queue/violations/{vid}/status - Review decision
- POST /inspections/{id}/reports, GET /inspections/{id}/reports - Reports
"""

from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import HTMLResponse

from lukaut.clients.service import get_client, list_all_clients
from lukaut.core.audit_logger import log_action
from lukaut.db.connection import get_session
from lukaut.db.models import UserModel
from lukaut.errors import ValidationError
from lukaut.images.service import list_images
from lukaut.inspections.service import (
    InspectionParams,
    count_violations,
    create_inspection,
    delete_inspection,
    get_analysis_status,
    get_inspection,
    list_inspections,
    trigger_analysis,
    update_inspection,
    update_status,
)
from lukaut.jobs.queue import dispatch
from lukaut.models import InspectionStatus, ViolationStatus, parse_page
from lukaut.reporting.service import list_inspection_reports, queue_report
from lukaut.sites.service import get_site, list_sites
from lukaut.violations.review_queue import load_queue, parse_position, review_and_advance
from lukaut.violations.service import list_linked_regulations, list_violations
from lukaut.web.auth import require_user
from lukaut.web.dependencies import (
    form_values,
    is_htmx,
    pagination,
    parse_uuid,
    redirect,
    render,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/inspections", tags=["inspections"])

INSPECTION_FIELDS = (
    "title",
    "inspection_date",
    "weather_conditions",
    "temperature",
    "inspector_notes",
    "address_line1",
    "address_line2",
    "city",
    "state",
    "postal_code",
)

STATUS_EVENTS = {
    InspectionStatus.COMPLETED.value: "inspectionCompleted",
    InspectionStatus.REVIEW.value: "inspectionReopened",
}


def _params(form) -> tuple[InspectionParams, dict[str, str], bool]:
    """InspectionParams from a form, the echoed values, and whether the client was cleared."""
    values = form_values(form, INSPECTION_FIELDS)
    raw_client = form.get("client_id")
    client_id = parse_uuid(raw_client)
    site_id = parse_uuid(form.get("site_id"))
    params = InspectionParams(**values, client_id=client_id, site_id=site_id)
    values["client_id"] = str(client_id) if client_id else ""
    values["site_id"] = str(site_id) if site_id else ""
    return params, values, raw_client is not None and client_id is None


async def _form_page(request: Request, user: UserModel, inspection, form: dict, errors: dict):
    async with get_session() as session:
        clients = await list_all_clients(session, user.id)
        sites = await list_sites(session, user.id, page_size=200)
    return render(
        request,
        "inspections/form.html",
        {
            "inspection": inspection,
            "form": form,
            "errors": errors,
            "clients": clients,
            "sites": sites.items,
        },
    )


async def _detail_context(session, inspection_id: UUID, user_id: UUID) -> dict:
    inspection = await get_inspection(session, inspection_id, user_id)
    client = await get_client(session, inspection.client_id, user_id) if inspection.client_id else None
    site = await get_site(session, inspection.site_id, user_id) if inspection.site_id else None
    violations = await list_violations(session, inspection_id, user_id)
    linked = {v.id: await list_linked_regulations(session, v.id) for v in violations}
    confirmed = await count_violations(session, inspection_id, ViolationStatus.CONFIRMED.value)
    return {
        "inspection": inspection,
        "client": client,
        "site": site,
        "images": await list_images(session, inspection_id, user_id),
        "violations": violations,
        "violation_regulations": linked,
        "analysis": await get_analysis_status(session, inspection_id, user_id),
        "reports": await list_inspection_reports(session, inspection_id, user_id),
        "confirmed_count": confirmed,
        "can_generate_report": inspection.status
        in (InspectionStatus.REVIEW.value, InspectionStatus.COMPLETED.value)
        and inspection.can_generate_report(confirmed),
    }


# ============================================================================
# CRUD
# ============================================================================


@router.get("", response_class=HTMLResponse)
async def inspections_page(
    request: Request,
    page: str | None = Query(None),
    status: str | None = Query(None),
    client_id: str | None = Query(None),
    q: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    status_filter = status if status in {s.value for s in InspectionStatus} else None
    client_uuid = parse_uuid(client_id)
    async with get_session() as session:
        inspections = await list_inspections(
            session,
            user.id,
            page=parse_page(page),
            status=status_filter,
            client_id=client_uuid,
            q=q,
        )
        clients = await list_all_clients(session, user.id)

    context = {
        "inspections": inspections,
        "clients": clients,
        "statuses": [s.value for s in InspectionStatus],
        "status": status_filter or "",
        "client_id": str(client_uuid) if client_uuid else "",
        "q": q or "",
        "pagination": pagination(
            inspections, "/inspections", status=status_filter, client_id=client_uuid, q=q
        ),
    }
    template = "inspections/_table.html" if is_htmx(request) else "inspections/list.html"
    return render(request, template, context)


@router.get("/new", response_class=HTMLResponse)
async def new_inspection_page(
    request: Request,
    client_id: str | None = Query(None),
    site_id: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    form: dict[str, str] = {}
    site_uuid = parse_uuid(site_id)
    if site_uuid is not None:
        # Prefill the address from the chosen site
        async with get_session() as session:
            site = await get_site(session, site_uuid, user.id)
        form.update(
            title=site.name,
            address_line1=site.address_line1,
            address_line2=site.address_line2 or "",
            city=site.city,
            state=site.state,
            postal_code=site.postal_code,
            site_id=str(site.id),
            client_id=str(site.client_id) if site.client_id else "",
        )
    elif (client_uuid := parse_uuid(client_id)) is not None:
        form["client_id"] = str(client_uuid)
    return await _form_page(request, user, None, form, {})


@router.post("")
async def create_inspection_submit(request: Request, user: UserModel = Depends(require_user)):
    params, form, _ = _params(await request.form())
    try:
        async with get_session() as session:
            inspection = await create_inspection(session, user.id, params)
    except ValidationError as exc:
        return await _form_page(request, user, None, form, exc.fields)

    await log_action(
        request, "INSPECTION_CREATED", user.email, user_id=user.id,
        resource_type="inspection", resource_id=inspection.id,
    )
    return redirect(request, f"/inspections/{inspection.id}")


@router.get("/{inspection_id}", response_class=HTMLResponse)
async def inspection_detail(
    request: Request, inspection_id: UUID, user: UserModel = Depends(require_user)
):
    async with get_session() as session:
        context = await _detail_context(session, inspection_id, user.id)
    return render(request, "inspections/detail.html", context)


@router.get("/{inspection_id}/edit", response_class=HTMLResponse)
async def edit_inspection_page(
    request: Request, inspection_id: UUID, user: UserModel = Depends(require_user)
):
    async with get_session() as session:
        inspection = await get_inspection(session, inspection_id, user.id)
    form = {name: getattr(inspection, name) or "" for name in INSPECTION_FIELDS}
    form["inspection_date"] = inspection.inspection_date.isoformat()
    form["client_id"] = str(inspection.client_id) if inspection.client_id else ""
    form["site_id"] = str(inspection.site_id) if inspection.site_id else ""
    return await _form_page(request, user, inspection, form, {})


@router.api_route("/{inspection_id}", methods=["PUT", "POST"])
async def update_inspection_submit(
    request: Request, inspection_id: UUID, user: UserModel = Depends(require_user)
):
    params, form, clear_client = _params(await request.form())
    try:
        async with get_session() as session:
            await update_inspection(session, inspection_id, user.id, params, clear_client=clear_client)
    except ValidationError as exc:
        async with get_session() as session:
            inspection = await get_inspection(session, inspection_id, user.id)
        return await _form_page(request, user, inspection, form, exc.fields)
    return redirect(request, f"/inspections/{inspection_id}")


@router.delete("/{inspection_id}")
async def delete_inspection_route(
    request: Request, inspection_id: UUID, user: UserModel = Depends(require_user)
):
    async with get_session() as session:
        await delete_inspection(session, inspection_id, user.id)
    await log_action(
        request, "INSPECTION_DELETED", user.email, user_id=user.id,
        resource_type="inspection", resource_id=inspection_id,
    )
    return redirect(request, "/inspections")


@router.put("/{inspection_id}/status")
async def update_inspection_status(
    request: Request,
    inspection_id: UUID,
    status: str = Form(...),
    user: UserModel = Depends(require_user),
):
    """Complete a reviewed inspection or reopen a completed one."""
    async with get_session() as session:
        inspection = await update_status(session, inspection_id, user.id, status)
    return redirect(
        request,
        f"/inspections/{inspection_id}",
        trigger=STATUS_EVENTS.get(inspection.status),
    )


# ============================================================================
# Analysis
# ============================================================================


@router.post("/{inspection_id}/analyze")
async def analyze_inspection(
    request: Request, inspection_id: UUID, user: UserModel = Depends(require_user)
):
    async with get_session() as session:
        job = await trigger_analysis(session, inspection_id, user.id)
    await dispatch(job.id)

    if not is_htmx(request):
        return redirect(request, f"/inspections/{inspection_id}")
    async with get_session() as session:
        analysis = await get_analysis_status(session, inspection_id, user.id)
    return render(request, "inspections/_analysis_status.html", {"analysis": analysis})


@router.get("/{inspection_id}/status", response_class=HTMLResponse)
async def analysis_status(
    request: Request,
    inspection_id: UUID,
    polling: bool = Query(False),
    user: UserModel = Depends(require_user),
):
    """Analysis panel partial; polled while a job is in flight."""
    async with get_session() as session:
        analysis = await get_analysis_status(session, inspection_id, user.id)

    headers = None
    if polling and not analysis.is_analyzing:
        # Analysis just finished: reload the page so new violations show
        headers = {"HX-Refresh": "true"}
    return render(request, "inspections/_analysis_status.html", {"analysis": analysis}, headers=headers)


# ============================================================================
# Review queue
# ============================================================================


@router.get("/{inspection_id}/review")
async def review_redirect(request: Request, inspection_id: UUID, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        await get_inspection(session, inspection_id, user.id)
    return redirect(request, f"/inspections/{inspection_id}/review/queue")


async def _queue_response(request: Request, session, queue):
    regulations = []
    if queue.current is not None:
        regulations = await list_linked_regulations(session, queue.current.id)
    context = {"queue": queue, "inspection": queue.inspection, "regulations": regulations}
    template = "inspections/review/_card.html" if is_htmx(request) else "inspections/review/queue.html"
    return context, template


@router.get("/{inspection_id}/review/queue", response_class=HTMLResponse)
async def review_queue(
    request: Request,
    inspection_id: UUID,
    pos: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    async with get_session() as session:
        queue = await load_queue(session, inspection_id, user.id, parse_position(pos))
        context, template = await _queue_response(request, session, queue)
    return render(request, template, context)


@router.put("/{inspection_id}/review/queue/violations/{violation_id}/status", response_class=HTMLResponse)
async def review_decision(
    request: Request,
    inspection_id: UUID,
    violation_id: UUID,
    status: str = Query(...),
    pos: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    """Record confirm/reject and return the next pending violation."""
    async with get_session() as session:
        queue = await review_and_advance(
            session, inspection_id, violation_id, user.id, status, parse_position(pos)
        )
        context, template = await _queue_response(request, session, queue)
    return render(request, template, context, headers={"HX-Trigger": "violationUpdated"})


# ============================================================================
# Reports
# ============================================================================


@router.post("/{inspection_id}/reports")
async def create_report(
    request: Request,
    inspection_id: UUID,
    format: str = Form("pdf"),
    recipient_email: str = Form(""),
    user: UserModel = Depends(require_user),
):
    """Queue report generation; the worker renders and emails it."""
    async with get_session() as session:
        job = await queue_report(session, inspection_id, user.id, format, recipient_email)
    await dispatch(job.id)
    await log_action(
        request, "REPORT_REQUESTED", user.email, user_id=user.id,
        resource_type="inspection", resource_id=inspection_id,
        details={"format": format.lower(), "has_recipient": bool(recipient_email.strip())},
    )

    if not is_htmx(request):
        return redirect(request, f"/inspections/{inspection_id}")
    return render(
        request,
        "inspections/_report_queued.html",
        {"format": format.lower(), "recipient_email": recipient_email.strip()},
        headers={"HX-Trigger": "reportQueued"},
    )


@router.get("/{inspection_id}/reports", response_class=HTMLResponse)
async def inspection_reports(
    request: Request, inspection_id: UUID, user: UserModel = Depends(require_user)
):
    async with get_session() as session:
        reports = await list_inspection_reports(session, inspection_id, user.id)
    return render(request, "inspections/_reports.html", {"reports": reports, "inspection_id": inspection_id})
