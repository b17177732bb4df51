"""Client management routes.

Routes:
- GET /clients - Paged, searchable list (htmx search swaps the table only)
- GET /clients/new, POST /clients - Create
- GET /clients/{id} - Detail with sites and inspections
- GET /clients/{id}/edit, PUT|POST /clients/{id} - Update
- DELETE /clients/{id} - Delete (refused while sites or inspections reference it)
"""

from __future__ import annotations

import dataclasses
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse

from lukaut.clients.service import (
    ClientParams,
    create_client,
    delete_client,
    get_client,
    list_clients,
    update_client,
)
from lukaut.db.connection import get_session
from lukaut.db.models import UserModel
from lukaut.errors import ValidationError
from lukaut.inspections.service import list_inspections
from lukaut.models import parse_page
from lukaut.sites.service import list_sites
from lukaut.web.auth import require_user
from lukaut.web.dependencies import form_values, is_htmx, pagination, redirect, render

router = APIRouter(prefix="/clients", tags=["clients"])

CLIENT_FIELDS = tuple(f.name for f in dataclasses.fields(ClientParams))


def _form_page(request: Request, client, form: dict, errors: dict):
    return render(
        request,
        "clients/form.html",
        {"client": client, "form": form, "errors": errors},
    )


@router.get("", response_class=HTMLResponse)
async def clients_page(
    request: Request,
    page: str | None = Query(None),
    q: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    page_num = parse_page(page)
    async with get_session() as session:
        clients = await list_clients(session, user.id, page=page_num, q=q)

    context = {
        "clients": clients,
        "q": q or "",
        "pagination": pagination(clients, "/clients", q=q),
    }
    template = "clients/_table.html" if is_htmx(request) else "clients/list.html"
    return render(request, template, context)


@router.get("/new", response_class=HTMLResponse)
async def new_client_page(request: Request, user: UserModel = Depends(require_user)):
    return _form_page(request, None, {}, {})


@router.post("")
async def create_client_submit(request: Request, user: UserModel = Depends(require_user)):
    form = form_values(await request.form(), CLIENT_FIELDS)
    try:
        async with get_session() as session:
            client = await create_client(session, user.id, ClientParams(**form))
    except ValidationError as exc:
        return _form_page(request, None, form, exc.fields)
    return redirect(request, f"/clients/{client.id}")


@router.get("/{client_id}", response_class=HTMLResponse)
async def client_detail(request: Request, client_id: UUID, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        client = await get_client(session, client_id, user.id)
        sites = await list_sites(session, user.id, client_id=client_id, page_size=100)
        inspections = await list_inspections(session, user.id, client_id=client_id, page_size=10)

    return render(
        request,
        "clients/detail.html",
        {"client": client, "sites": sites.items, "inspections": inspections.items},
    )


@router.get("/{client_id}/edit", response_class=HTMLResponse)
async def edit_client_page(request: Request, client_id: UUID, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        client = await get_client(session, client_id, user.id)
    form = {name: getattr(client, name) or "" for name in CLIENT_FIELDS}
    return _form_page(request, client, form, {})


@router.api_route("/{client_id}", methods=["PUT", "POST"])
async def update_client_submit(request: Request, client_id: UUID, user: UserModel = Depends(require_user)):
    form = form_values(await request.form(), CLIENT_FIELDS)
    try:
        async with get_session() as session:
            client = await update_client(session, client_id, user.id, ClientParams(**form))
    except ValidationError as exc:
        async with get_session() as session:
            client = await get_client(session, client_id, user.id)
        return _form_page(request, client, form, exc.fields)
    return redirect(request, f"/clients/{client.id}")


@router.delete("/{client_id}")
async def delete_client_route(request: Request, client_id: UUID, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        await delete_client(session, client_id, user.id)
    return redirect(request, "/clients")
