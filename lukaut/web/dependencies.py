"""Shared dependencies and response helpers for Lukaut web routes.

Usage:
    from fastapi import Depends
    from lukaut.web.dependencies import get_templates

    @router.get("/page")
    async def page(request: Request, templates=Depends(get_templates)):
        return templates.TemplateResponse(request, "page.html", {})
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping
from urllib.parse import urlencode
from uuid import UUID

from fastapi import Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from lukaut.models import Page
from lukaut.web.csrf import get_csrf_token

# Global singleton for templates
_templates: Jinja2Templates | None = None

SEVERITY_BADGES = {
    "critical": "badge badge-critical",
    "serious": "badge badge-serious",
    "other": "badge badge-other",
    "recommendation": "badge badge-recommendation",
}


def _format_date(value, fmt: str = "%b %d, %Y") -> str:
    return value.strftime(fmt) if value else ""


def get_templates() -> Jinja2Templates:
    """Get the Jinja2Templates singleton for ``lukaut/web/templates``."""
    global _templates
    if _templates is None:
        _templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
        _templates.env.globals["csrf_token"] = get_csrf_token
        _templates.env.globals["severity_badge"] = lambda s: SEVERITY_BADGES.get(s, "badge")
        _templates.env.filters["date"] = _format_date
    return _templates


def is_htmx(request: Request) -> bool:
    return request.headers.get("HX-Request") == "true"


def render(
    request: Request,
    template: str,
    context: dict[str, Any] | None = None,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> HTMLResponse:
    context = dict(context or {})
    context.setdefault("user", getattr(request.state, "user", None))
    return get_templates().TemplateResponse(
        request, template, context, status_code=status_code, headers=headers
    )


def redirect(request: Request, url: str, trigger: str | None = None) -> Response:
    """Redirect after a mutation: HX-Redirect for htmx, 303 otherwise."""
    if is_htmx(request):
        headers = {"HX-Redirect": url}
        if trigger:
            headers["HX-Trigger"] = trigger
        return Response(status_code=200, headers=headers)
    return RedirectResponse(url=url, status_code=303)


def pagination(page: Page, base_url: str, **extra: Any) -> dict[str, Any]:
    """Context for partials/pagination.html."""
    params = {k: v for k, v in extra.items() if v not in (None, "")}
    return {
        "page": page,
        "base_url": base_url,
        "query_extra": ("&" + urlencode(params)) if params else "",
    }


def form_values(form: Mapping[str, Any], names: Iterable[str]) -> dict[str, str]:
    """Pick the submitted text fields named in ``names``.

    Missing fields are left out so partial updates keep their stored values.
    """
    return {name: str(form[name]) for name in names if name in form}


def parse_uuid(value: str | None) -> UUID | None:
    """Parse an optional id from a form or query string; blank or malformed is None."""
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None
