"""Dashboard route."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from lukaut.accounts.quota import usage_summary
from lukaut.clients.service import count_clients
from lukaut.db.connection import get_session
from lukaut.db.models import UserModel
from lukaut.inspections.service import dashboard_stats, list_inspections
from lukaut.web.auth import require_user
from lukaut.web.dependencies import render

router = APIRouter(tags=["dashboard"])

RECENT_INSPECTIONS = 5


@router.get("/", include_in_schema=False)
async def root():
    return RedirectResponse(url="/dashboard", status_code=303)


@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard(request: Request, user: UserModel = Depends(require_user)):
    """Status counts, recent inspections and this month's usage."""
    async with get_session() as session:
        stats = await dashboard_stats(session, user.id)
        recent = await list_inspections(session, user.id, page_size=RECENT_INSPECTIONS)
        usage = await usage_summary(session, user)
        clients = await count_clients(session, user.id)

    return render(
        request,
        "dashboard.html",
        {
            "stats": stats,
            "recent": recent.items,
            "usage": usage,
            "client_count": clients,
        },
    )
