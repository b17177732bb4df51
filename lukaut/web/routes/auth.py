"""Authentication routes.

Routes:
- GET/POST /login, GET/POST /register, POST /logout
- GET /verify-email, GET/POST /resend-verification
- GET/POST /forgot-password, GET/POST /reset-password
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Form, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse

import structlog

from lukaut.accounts.invites import invite_codes_enabled
from lukaut.accounts.service import (
    INVALID_CREDENTIALS_MESSAGE,
    RegisterParams,
    authenticate,
    get_user_by_email,
    register,
)
from lukaut.accounts.tokens import (
    PURPOSE_EMAIL_VERIFICATION,
    PURPOSE_PASSWORD_RESET,
    check_token,
    create_token,
    reset_password,
    verify_email,
)
from lukaut.core.audit_logger import log_action
from lukaut.db.connection import get_session
from lukaut.errors import ECONFLICT, EGONE, EINVALID, EUNAUTHORIZED, LukautError, ValidationError
from lukaut.notifications.email import get_email_service
from lukaut.utils.validation import email_error, normalize_email
from lukaut.web.auth import (
    SESSION_COOKIE,
    clear_session_cookie,
    create_session,
    destroy_session,
    get_current_user,
    safe_redirect_target,
    set_session_cookie,
    validate_session,
)
from lukaut.web.dependencies import render

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["authentication"])

LOGIN_FLASHES = {
    "registered": "Account created successfully! Please sign in.",
    "reset": "Password reset successfully! Please sign in with your new password.",
    "logout": "You have been signed out.",
}
RESEND_MESSAGE = "If an account exists with that email, a verification link has been sent."


def _send_verification(background: BackgroundTasks, email: str, name: str, token: str) -> None:
    background.add_task(get_email_service().send_verification_email, email, name, token)


# ============================================================================
# Login / Logout
# ============================================================================


@router.get("/login", response_class=HTMLResponse)
async def login_page(request: Request, return_to: str | None = None):
    if await get_current_user(request) is not None:
        return RedirectResponse(safe_redirect_target(return_to), status_code=303)
    flash = next((msg for key, msg in LOGIN_FLASHES.items() if request.query_params.get(key)), None)
    return render(
        request,
        "auth/login.html",
        {"form": {}, "errors": {}, "return_to": return_to or "", "flash": flash},
    )


@router.post("/login")
async def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    return_to: str = Form(""),
):
    """Process login form.

    Sets an HttpOnly, SameSite=Lax session cookie and redirects with 303. Any
    credential failure re-renders the form with one generic message.
    """
    try:
        async with get_session() as session:
            user = await authenticate(session, email, password)
    except ValidationError as exc:
        return render(
            request,
            "auth/login.html",
            {"form": {"email": email}, "errors": exc.fields, "return_to": return_to},
        )
    except LukautError as exc:
        if exc.code != EUNAUTHORIZED:
            raise
        await log_action(request, "LOGIN_FAILED", normalize_email(email), resource_type="auth")
        return render(
            request,
            "auth/login.html",
            {
                "form": {"email": email},
                "errors": {},
                "error": INVALID_CREDENTIALS_MESSAGE,
                "return_to": return_to,
            },
        )

    token = create_session(user)
    response = RedirectResponse(url=safe_redirect_target(return_to), status_code=303)
    set_session_cookie(response, token)
    await log_action(request, "LOGIN", user.email, user_id=user.id, resource_type="auth")
    logger.info("user_logged_in", user_id=str(user.id))
    return response


@router.post("/logout")
async def logout(request: Request):
    token = request.cookies.get(SESSION_COOKIE)
    data = validate_session(token)
    destroy_session(token)
    if data is not None:
        await log_action(request, "LOGOUT", data.email, user_id=data.user_id, resource_type="auth")

    response = RedirectResponse(url="/login?logout=1", status_code=303)
    clear_session_cookie(response)
    return response


# ============================================================================
# Registration and email verification
# ============================================================================


@router.get("/register", response_class=HTMLResponse)
async def register_page(request: Request, return_to: str | None = None):
    return render(
        request,
        "auth/register.html",
        {"form": {}, "errors": {}, "return_to": return_to or "", "invite_required": invite_codes_enabled()},
    )


@router.post("/register")
async def register_submit(
    request: Request,
    background: BackgroundTasks,
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    password_confirm: str = Form(""),
    company_name: str = Form(""),
    invite_code: str = Form(""),
    return_to: str = Form(""),
):
    form = {"name": name, "email": email, "company_name": company_name, "invite_code": invite_code}
    context = {"form": form, "errors": {}, "return_to": return_to, "invite_required": invite_codes_enabled()}

    if password != password_confirm:
        context["errors"] = {"password_confirm": "Passwords do not match"}
        return render(request, "auth/register.html", context)

    try:
        async with get_session() as session:
            user = await register(
                session,
                RegisterParams(
                    email=email,
                    password=password,
                    name=name,
                    company_name=company_name,
                    invite_code=invite_code,
                ),
            )
            token = await create_token(session, user.id, PURPOSE_EMAIL_VERIFICATION)
    except ValidationError as exc:
        context["errors"] = exc.fields
        return render(request, "auth/register.html", context)
    except LukautError as exc:
        if exc.code != ECONFLICT:
            raise
        context["errors"] = {"email": "An account with this email already exists"}
        return render(request, "auth/register.html", context)

    _send_verification(background, user.email, user.name, token)
    await log_action(request, "REGISTER", user.email, user_id=user.id, resource_type="user", resource_id=user.id)

    response = RedirectResponse(url=safe_redirect_target(return_to), status_code=303)
    set_session_cookie(response, create_session(user))
    return response


@router.get("/verify-email", response_class=HTMLResponse)
async def verify_email_page(request: Request, token: str = ""):
    try:
        async with get_session() as session:
            await verify_email(session, token)
    except LukautError as exc:
        if exc.code not in (EINVALID, EGONE):
            raise
        return render(
            request,
            "auth/verify_email.html",
            {"success": False, "message": "This verification link is invalid or has expired."},
        )
    return render(
        request,
        "auth/verify_email.html",
        {"success": True, "message": "Your email address has been verified."},
    )


@router.get("/resend-verification", response_class=HTMLResponse)
async def resend_verification_page(request: Request):
    return render(request, "auth/resend_verification.html", {"form": {}, "errors": {}})


@router.post("/resend-verification", response_class=HTMLResponse)
async def resend_verification(request: Request, background: BackgroundTasks, email: str = Form("")):
    email = normalize_email(email)
    if error := email_error(email):
        return render(request, "auth/resend_verification.html", {"form": {"email": email}, "errors": {"email": error}})

    async with get_session() as session:
        user = await get_user_by_email(session, email)
        if user is not None and user.is_active and not user.email_verified:
            token = await create_token(session, user.id, PURPOSE_EMAIL_VERIFICATION)
            _send_verification(background, user.email, user.name, token)

    # Same answer whether or not the account exists
    return render(request, "auth/message.html", {"title": "Check your email", "message": RESEND_MESSAGE})


# ============================================================================
# Password reset
# ============================================================================


@router.get("/forgot-password", response_class=HTMLResponse)
async def forgot_password_page(request: Request):
    return render(request, "auth/forgot_password.html", {"form": {}, "errors": {}})


@router.post("/forgot-password", response_class=HTMLResponse)
async def forgot_password(request: Request, background: BackgroundTasks, email: str = Form("")):
    email = normalize_email(email)
    if error := email_error(email):
        return render(request, "auth/forgot_password.html", {"form": {"email": email}, "errors": {"email": error}})

    async with get_session() as session:
        user = await get_user_by_email(session, email)
        if user is not None and user.is_active:
            token = await create_token(session, user.id, PURPOSE_PASSWORD_RESET)
            background.add_task(get_email_service().send_password_reset_email, user.email, user.name, token)
            await log_action(request, "PASSWORD_RESET_REQUESTED", user.email, user_id=user.id, session=session)
        else:
            logger.debug("password_reset_unknown_email")

    return render(
        request,
        "auth/message.html",
        {
            "title": "Check your email",
            "message": "If an account exists with that email, we've sent a link to reset your password.",
        },
    )


@router.get("/reset-password", response_class=HTMLResponse)
async def reset_password_page(request: Request, token: str = ""):
    try:
        async with get_session() as session:
            await check_token(session, token, PURPOSE_PASSWORD_RESET)
    except LukautError as exc:
        if exc.code not in (EINVALID, EGONE):
            raise
        return render(
            request,
            "auth/message.html",
            {
                "title": "Reset link invalid",
                "message": "This reset link has expired or is invalid. Please request a new password reset.",
                "link": ("/forgot-password", "Request a new link"),
            },
        )
    return render(request, "auth/reset_password.html", {"token": token, "errors": {}})


@router.post("/reset-password")
async def reset_password_submit(
    request: Request,
    token: str = Form(""),
    password: str = Form(""),
    password_confirm: str = Form(""),
):
    if password != password_confirm:
        return render(
            request,
            "auth/reset_password.html",
            {"token": token, "errors": {"password_confirm": "Passwords do not match"}},
        )
    try:
        async with get_session() as session:
            user = await reset_password(session, token, password)
    except ValidationError as exc:
        return render(request, "auth/reset_password.html", {"token": token, "errors": exc.fields})
    except LukautError as exc:
        if exc.code not in (EINVALID, EGONE):
            raise
        return render(
            request,
            "auth/message.html",
            {
                "title": "Reset link invalid",
                "message": "This reset link has expired or is invalid. Please request a new password reset.",
                "link": ("/forgot-password", "Request a new link"),
            },
        )

    await log_action(request, "PASSWORD_RESET", user.email, user_id=user.id, resource_type="user")
    return RedirectResponse(url="/login?reset=1", status_code=303)


@router.get("/favicon.ico", include_in_schema=False)
async def favicon():
    """Return empty favicon to prevent 404s."""
    return Response(status_code=204)
