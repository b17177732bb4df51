"""Administration routes (accounts listed in ADMIN_EMAILS).

Routes:
- GET /admin - Overview counts and this month's AI cost
- GET /admin/users - Searchable user list
- GET /admin/users/{id} - User detail with usage
- POST /admin/users/{id}/disable, POST /admin/users/{id}/enable
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse
from sqlalchemy import func, select

from lukaut.accounts.quota import month_start, usage_summary
from lukaut.accounts.service import get_user, list_users, set_active
from lukaut.ai.usage import monthly_usage, platform_usage, top_users_by_cost
from lukaut.core.audit_logger import log_action
from lukaut.db.connection import get_session
from lukaut.db.models import InspectionModel, JobModel, ReportModel, UserModel
from lukaut.errors import invalid
from lukaut.inspections.service import dashboard_stats
from lukaut.models import DEFAULT_PAGE_SIZE, JobStatus, Page, parse_page
from lukaut.web.auth import require_admin
from lukaut.web.dependencies import pagination, redirect, render

router = APIRouter(prefix="/admin", tags=["admin"])


async def _count(session, model, *conditions) -> int:
    return await session.scalar(select(func.count()).select_from(model).where(*conditions)) or 0


@router.get("", response_class=HTMLResponse)
async def admin_dashboard(request: Request, admin: UserModel = Depends(require_admin)):
    async with get_session() as session:
        stats = {
            "users": await _count(session, UserModel),
            "active_users": await _count(session, UserModel, UserModel.is_active.is_(True)),
            "inspections": await _count(session, InspectionModel),
            "reports": await _count(session, ReportModel),
            "pending_jobs": await _count(session, JobModel, JobModel.status == JobStatus.PENDING.value),
            "failed_jobs": await _count(session, JobModel, JobModel.status == JobStatus.FAILED.value),
        }
        recent_failures = list(
            (
                await session.execute(
                    select(JobModel)
                    .where(JobModel.status == JobStatus.FAILED.value)
                    .order_by(JobModel.completed_at.desc())
                    .limit(10)
                )
            ).scalars()
        )
        ai_usage = await platform_usage(session, since=month_start())
        ai_top_users = await top_users_by_cost(session, since=month_start())
    return render(
        request,
        "admin/index.html",
        {
            "stats": stats,
            "failed_jobs": recent_failures,
            "ai_usage": ai_usage,
            "ai_top_users": ai_top_users,
        },
    )


@router.get("/users", response_class=HTMLResponse)
async def admin_users(
    request: Request,
    q: str | None = Query(None),
    page: str | None = Query(None),
    admin: UserModel = Depends(require_admin),
):
    page_num = parse_page(page)
    async with get_session() as session:
        users, total = await list_users(
            session, q=q, limit=DEFAULT_PAGE_SIZE, offset=(page_num - 1) * DEFAULT_PAGE_SIZE
        )
    result = Page(items=users, total=total, page=page_num)
    return render(
        request,
        "admin/users.html",
        {"users": result, "q": q or "", "pagination": pagination(result, "/admin/users", q=q)},
    )


@router.get("/users/{user_id}", response_class=HTMLResponse)
async def admin_user_detail(request: Request, user_id: UUID, admin: UserModel = Depends(require_admin)):
    async with get_session() as session:
        account = await get_user(session, user_id)
        usage = await usage_summary(session, account)
        stats = await dashboard_stats(session, user_id)
        ai_usage = await monthly_usage(session, user_id)
    return render(
        request,
        "admin/user_detail.html",
        {"account": account, "usage": usage, "stats": stats, "ai_usage": ai_usage},
    )


async def _set_active(request: Request, user_id: UUID, admin: UserModel, active: bool):
    if user_id == admin.id and not active:
        raise invalid("You cannot disable your own account", op="admin.disable_user")
    async with get_session() as session:
        account = await set_active(session, user_id, active)
    await log_action(
        request,
        "USER_ENABLED" if active else "USER_DISABLED",
        admin.email,
        user_id=admin.id,
        resource_type="user",
        resource_id=user_id,
        details={"target_email": account.email},
    )
    return redirect(request, f"/admin/users/{user_id}")


@router.post("/users/{user_id}/disable")
async def disable_user(request: Request, user_id: UUID, admin: UserModel = Depends(require_admin)):
    return await _set_active(request, user_id, admin, False)


@router.post("/users/{user_id}/enable")
async def enable_user(request: Request, user_id: UUID, admin: UserModel = Depends(require_admin)):
    return await _set_active(request, user_id, admin, True)
