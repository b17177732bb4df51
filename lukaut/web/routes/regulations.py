"""OSHA regulation browsing and violation linking.

Routes:
- GET /regulations - Browse and search, optionally for a violation being cited
- GET /regulations/search - Search results partial
- GET /regulations/{id} - Regulation detail
- POST /violations/{vid}/regulations/{rid} - Link a regulation
- DELETE /violations/{vid}/regulations/{rid} - Unlink a regulation
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse

from lukaut.db.connection import get_session
from lukaut.db.models import UserModel
from lukaut.models import parse_page
from lukaut.regulations.service import (
    get_regulation,
    link_regulation,
    list_categories,
    search_regulations,
    unlink_regulation,
)
from lukaut.violations.service import get_violation, list_linked_regulations
from lukaut.web.auth import require_user
from lukaut.web.dependencies import pagination, parse_uuid, render

router = APIRouter(tags=["regulations"])


async def _search_context(
    session, user: UserModel, q: str | None, category: str | None, page: str | None, violation_id: str | None
) -> dict:
    violation = None
    linked: set[UUID] = set()
    if (violation_uuid := parse_uuid(violation_id)) is not None:
        violation = await get_violation(session, violation_uuid, user.id)
        linked = {item.regulation.id for item in await list_linked_regulations(session, violation.id)}

    results = await search_regulations(session, q or "", category=category, page=parse_page(page))
    return {
        "results": results,
        "q": q or "",
        "category": category or "",
        "violation": violation,
        "linked_ids": linked,
        "pagination": pagination(
            results,
            "/regulations",
            q=q,
            category=category,
            violation_id=violation.id if violation else None,
        ),
    }


@router.get("/regulations", response_class=HTMLResponse)
async def regulations_page(
    request: Request,
    q: str | None = Query(None),
    category: str | None = Query(None),
    page: str | None = Query(None),
    violation_id: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    async with get_session() as session:
        context = await _search_context(session, user, q, category, page, violation_id)
        context["categories"] = await list_categories(session)
    return render(request, "regulations/list.html", context)


@router.get("/regulations/search", response_class=HTMLResponse)
async def regulations_search(
    request: Request,
    q: str | None = Query(None),
    category: str | None = Query(None),
    page: str | None = Query(None),
    violation_id: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    async with get_session() as session:
        context = await _search_context(session, user, q, category, page, violation_id)
    return render(request, "regulations/_results.html", context)


@router.get("/regulations/{regulation_id}", response_class=HTMLResponse)
async def regulation_detail(
    request: Request,
    regulation_id: UUID,
    violation_id: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    async with get_session() as session:
        regulation = await get_regulation(session, regulation_id)
        violation = None
        if (violation_uuid := parse_uuid(violation_id)) is not None:
            violation = await get_violation(session, violation_uuid, user.id)
    return render(
        request,
        "regulations/detail.html",
        {"regulation": regulation, "violation": violation},
    )


async def _violation_card(request: Request, violation_id: UUID, user: UserModel):
    async with get_session() as session:
        violation = await get_violation(session, violation_id, user.id)
        regulations = await list_linked_regulations(session, violation_id)
    return render(
        request,
        "violations/_card.html",
        {"violation": violation, "regulations": regulations, "edit": False, "images": []},
        headers={"HX-Trigger": "violationUpdated"},
    )


@router.post("/violations/{violation_id}/regulations/{regulation_id}", response_class=HTMLResponse)
async def link_regulation_route(
    request: Request,
    violation_id: UUID,
    regulation_id: UUID,
    user: UserModel = Depends(require_user),
):
    async with get_session() as session:
        await link_regulation(session, violation_id, regulation_id, user.id)
    return await _violation_card(request, violation_id, user)


@router.delete("/violations/{violation_id}/regulations/{regulation_id}", response_class=HTMLResponse)
async def unlink_regulation_route(
    request: Request,
    violation_id: UUID,
    regulation_id: UUID,
    user: UserModel = Depends(require_user),
):
    async with get_session() as session:
        await unlink_regulation(session, violation_id, regulation_id, user.id)
    return await _violation_card(request, violation_id, user)
