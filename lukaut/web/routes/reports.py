"""Report listing and downloads.

Routes:
- GET /reports - Paged list of the user's reports
- GET /reports/{id}/download?format=pdf|docx - Stream the stored file
- GET /reports/{id}/url?format=pdf|docx - Signed download URL (JSON)
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, Response

from lukaut.config import get_config
from lukaut.db.connection import get_session
from lukaut.db.models import UserModel
from lukaut.models import parse_page
from lukaut.reporting.service import download_report, list_reports, parse_format, report_url
from lukaut.web.auth import require_user
from lukaut.web.dependencies import pagination, render
from lukaut.web.models import ReportUrlResponse

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("", response_class=HTMLResponse)
async def reports_page(
    request: Request,
    page: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    async with get_session() as session:
        reports = await list_reports(session, user.id, page=parse_page(page))
    return render(
        request,
        "reports/list.html",
        {"reports": reports, "pagination": pagination(reports, "/reports")},
    )


@router.get("/{report_id}/download")
async def download(
    report_id: UUID,
    format: str = Query("pdf"),
    user: UserModel = Depends(require_user),
):
    fmt = parse_format(format, "reports.download")
    async with get_session() as session:
        report = await download_report(session, report_id, user.id, fmt)
    return Response(
        content=report.data,
        media_type=report.content_type,
        headers={"Content-Disposition": f'attachment; filename="{report.filename}"'},
    )


@router.get("/{report_id}/url", response_model=ReportUrlResponse)
async def signed_url(
    report_id: UUID,
    format: str = Query("pdf"),
    user: UserModel = Depends(require_user),
):
    fmt = parse_format(format, "reports.url")
    ttl = get_config().storage.url_ttl_seconds
    async with get_session() as session:
        url = await report_url(session, report_id, user.id, fmt, ttl)
    return ReportUrlResponse(url=url, format=fmt, expires_in=ttl)
