"""Boundary mapping from application errors to HTTP responses.

JSON clients get ``{"error": {"code", "message", "fields"?}}``. Browsers get
the error page, and htmx requests get the error fragment.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from lukaut.errors import (
    EINTERNAL,
    EINVALID,
    HTTP_STATUS_BY_CODE,
    LukautError,
    ValidationError,
    error_code,
    error_message,
    http_status_for,
    internal,
)
from lukaut.web.dependencies import is_htmx, render

logger = structlog.get_logger(__name__)

VALIDATION_MESSAGE = "Validation failed. Please check your input and try again."
REDIRECT_CODES = (301, 302, 303, 307, 308)
_CODE_BY_STATUS = {status: code for code, status in HTTP_STATUS_BY_CODE.items()}


def wants_json(request: Request) -> bool:
    if is_htmx(request):
        return False
    accept = request.headers.get("accept", "")
    content_type = request.headers.get("content-type", "")
    return "application/json" in accept or content_type.startswith("application/json")


def error_response(request: Request, exc: LukautError) -> Response:
    """Render ``exc`` for the client and log it by severity."""
    code = error_code(exc)
    status = http_status_for(code)
    message = error_message(exc)

    log = logger.bind(code=code, status=status, op=exc.op, path=request.url.path)
    if status >= 500:
        log.error("request_error", error=str(exc), exc_info=exc.cause)
    else:
        log.info("request_error", error=str(exc))

    if wants_json(request):
        body: dict = {"code": code, "message": message}
        if isinstance(exc, ValidationError):
            body["fields"] = exc.fields
        return JSONResponse(status_code=status, content={"error": body})

    if isinstance(exc, ValidationError):
        message = VALIDATION_MESSAGE
    template = "partials/error.html" if is_htmx(request) else "error.html"
    return render(request, template, {"status": status, "message": message, "code": code}, status_code=status)


async def lukaut_error_handler(request: Request, exc: LukautError) -> Response:
    return error_response(request, exc)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Redirects pass through; everything else renders like an application error."""
    headers = getattr(exc, "headers", None) or {}
    if exc.status_code in REDIRECT_CODES and "Location" in headers:
        return RedirectResponse(url=headers["Location"], status_code=exc.status_code)
    if "HX-Redirect" in headers:
        return Response(status_code=exc.status_code, headers=headers)

    code = _CODE_BY_STATUS.get(exc.status_code, EINTERNAL if exc.status_code >= 500 else EINVALID)
    message = exc.detail if isinstance(exc.detail, str) else ""
    return error_response(request, LukautError(code, message, op="http"))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> Response:
    fields = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        fields[".".join(loc) or "request"] = err.get("msg", "invalid")
    return error_response(request, ValidationError(fields, op="http.validate"))


async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    return error_response(request, internal(exc, op="http"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LukautError, lukaut_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
