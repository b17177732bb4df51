"""Job site management routes.

Routes:
- GET /sites - Paged, searchable list, optionally filtered by client
- GET /sites/new, POST /sites - Create
- GET /sites/{id} - Detail with inspections at the site
- GET /sites/{id}/edit, PUT|POST /sites/{id} - Update
- DELETE /sites/{id} - Delete (inspections keep their copied address)
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse
from sqlalchemy import select

from lukaut.clients.service import get_client, list_all_clients
from lukaut.db.connection import get_session
from lukaut.db.models import InspectionModel, UserModel
from lukaut.errors import ValidationError
from lukaut.models import parse_page
from lukaut.sites.service import SiteParams, create_site, delete_site, get_site, list_sites, update_site
from lukaut.web.auth import require_user
from lukaut.web.dependencies import form_values, is_htmx, pagination, parse_uuid, redirect, render

router = APIRouter(prefix="/sites", tags=["sites"])

SITE_FIELDS = ("name", "address_line1", "address_line2", "city", "state", "postal_code", "notes")


def _params(form) -> tuple[SiteParams, dict[str, str], bool]:
    """Build SiteParams from a submitted form.

    Returns the params, the echoed form values and whether the client select
    was explicitly cleared.
    """
    values = form_values(form, SITE_FIELDS)
    raw_client = form.get("client_id")
    client_id = parse_uuid(raw_client)
    values["client_id"] = str(client_id) if client_id else ""
    params = SiteParams(**{k: v for k, v in values.items() if k != "client_id"}, client_id=client_id)
    return params, values, raw_client is not None and client_id is None


async def _form_page(request: Request, user: UserModel, site, form: dict, errors: dict):
    async with get_session() as session:
        clients = await list_all_clients(session, user.id)
    return render(
        request,
        "sites/form.html",
        {"site": site, "form": form, "errors": errors, "clients": clients},
    )


@router.get("", response_class=HTMLResponse)
async def sites_page(
    request: Request,
    page: str | None = Query(None),
    q: str | None = Query(None),
    client_id: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    client_uuid = parse_uuid(client_id)
    async with get_session() as session:
        sites = await list_sites(session, user.id, page=parse_page(page), q=q, client_id=client_uuid)
        clients = await list_all_clients(session, user.id)

    context = {
        "sites": sites,
        "clients": clients,
        "client_names": {c.id: c.name for c in clients},
        "q": q or "",
        "client_id": str(client_uuid) if client_uuid else "",
        "pagination": pagination(sites, "/sites", q=q, client_id=client_uuid),
    }
    template = "sites/_table.html" if is_htmx(request) else "sites/list.html"
    return render(request, template, context)


@router.get("/new", response_class=HTMLResponse)
async def new_site_page(
    request: Request,
    client_id: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    client_uuid = parse_uuid(client_id)
    return await _form_page(request, user, None, {"client_id": str(client_uuid) if client_uuid else ""}, {})


@router.post("")
async def create_site_submit(request: Request, user: UserModel = Depends(require_user)):
    params, form, _ = _params(await request.form())
    try:
        async with get_session() as session:
            site = await create_site(session, user.id, params)
    except ValidationError as exc:
        return await _form_page(request, user, None, form, exc.fields)
    return redirect(request, f"/sites/{site.id}")


@router.get("/{site_id}", response_class=HTMLResponse)
async def site_detail(request: Request, site_id: UUID, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        site = await get_site(session, site_id, user.id)
        client = await get_client(session, site.client_id, user.id) if site.client_id else None
        rows = await session.execute(
            select(InspectionModel)
            .where(InspectionModel.site_id == site_id, InspectionModel.user_id == user.id)
            .order_by(InspectionModel.inspection_date.desc())
            .limit(20)
        )
        inspections = list(rows.scalars())

    return render(
        request,
        "sites/detail.html",
        {"site": site, "client": client, "inspections": inspections},
    )


@router.get("/{site_id}/edit", response_class=HTMLResponse)
async def edit_site_page(request: Request, site_id: UUID, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        site = await get_site(session, site_id, user.id)
    form = {name: getattr(site, name) or "" for name in SITE_FIELDS}
    form["client_id"] = str(site.client_id) if site.client_id else ""
    return await _form_page(request, user, site, form, {})


@router.api_route("/{site_id}", methods=["PUT", "POST"])
async def update_site_submit(request: Request, site_id: UUID, user: UserModel = Depends(require_user)):
    params, form, clear_client = _params(await request.form())
    try:
        async with get_session() as session:
            site = await update_site(session, site_id, user.id, params, clear_client=clear_client)
    except ValidationError as exc:
        async with get_session() as session:
            site = await get_site(session, site_id, user.id)
        return await _form_page(request, user, site, form, exc.fields)
    return redirect(request, f"/sites/{site.id}")


@router.delete("/{site_id}")
async def delete_site_route(request: Request, site_id: UUID, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        await delete_site(session, site_id, user.id)
    return redirect(request, "/sites")
