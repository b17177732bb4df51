"""Account settings routes.

Routes:
- GET /settings - Profile, password and business profile forms
- POST /settings/profile, POST /settings/password, POST /settings/business
- GET /settings/billing - Subscription status and this month's usage
- POST /settings/billing/checkout - Start a Stripe Checkout for a plan
- POST /settings/billing/portal - Open the Stripe customer portal
- POST /settings/billing/cancel, POST /settings/billing/reactivate
- GET /settings/billing/success - Return point after checkout
"""

from __future__ import annotations

import dataclasses

import structlog
from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import HTMLResponse

from lukaut.accounts.quota import usage_summary
from lukaut.accounts.service import (
    BusinessProfileParams,
    ProfileParams,
    change_password,
    update_business_profile,
    update_profile,
)
from lukaut.billing.service import (
    cancel_subscription,
    create_checkout_session,
    create_portal_session,
    plan_prices,
    reactivate_subscription,
)
from lukaut.core.audit_logger import log_action
from lukaut.db.connection import get_session
from lukaut.db.models import UserModel
from lukaut.errors import ValidationError
from lukaut.web.auth import require_user
from lukaut.web.dependencies import form_values, redirect, render

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])

BUSINESS_FIELDS = tuple(f.name for f in dataclasses.fields(BusinessProfileParams))


def _settings_page(request: Request, user: UserModel, section: str | None = None, **extra):
    context = {
        "user": user,
        "profile_form": {
            "name": user.name,
            "company_name": user.company_name or "",
            "phone": user.phone or "",
        },
        "business_form": {name: getattr(user, name) or "" for name in BUSINESS_FIELDS},
        "errors": {},
        "section": section,
        "flash": None,
    }
    context.update(extra)
    return render(request, "settings/index.html", context)


@router.get("", response_class=HTMLResponse)
async def settings_page(request: Request, user: UserModel = Depends(require_user)):
    return _settings_page(request, user)


@router.post("/profile", response_class=HTMLResponse)
async def update_profile_submit(
    request: Request,
    name: str = Form(""),
    company_name: str = Form(""),
    phone: str = Form(""),
    user: UserModel = Depends(require_user),
):
    form = {"name": name, "company_name": company_name, "phone": phone}
    try:
        async with get_session() as session:
            user = await update_profile(session, user.id, ProfileParams(**form))
    except ValidationError as exc:
        return _settings_page(request, user, "profile", profile_form=form, errors=exc.fields)
    return _settings_page(request, user, "profile", flash="Profile updated.")


@router.post("/password", response_class=HTMLResponse)
async def change_password_submit(
    request: Request,
    current_password: str = Form(""),
    new_password: str = Form(""),
    new_password_confirm: str = Form(""),
    user: UserModel = Depends(require_user),
):
    if new_password != new_password_confirm:
        return _settings_page(
            request, user, "password", errors={"new_password_confirm": "Passwords do not match"}
        )
    try:
        async with get_session() as session:
            await change_password(session, user.id, current_password, new_password)
    except ValidationError as exc:
        return _settings_page(request, user, "password", errors=exc.fields)

    await log_action(request, "PASSWORD_CHANGED", user.email, user_id=user.id, resource_type="user")
    return _settings_page(request, user, "password", flash="Password changed.")


@router.post("/business", response_class=HTMLResponse)
async def update_business_submit(request: Request, user: UserModel = Depends(require_user)):
    form = form_values(await request.form(), BUSINESS_FIELDS)
    try:
        async with get_session() as session:
            user = await update_business_profile(session, user.id, BusinessProfileParams(**form))
    except ValidationError as exc:
        return _settings_page(request, user, "business", business_form=form, errors=exc.fields)
    return _settings_page(request, user, "business", flash="Business profile updated.")


BILLING_FLASH = {
    "updated": "Thanks! Your subscription is being activated. It can take a minute to show here.",
    "canceled": "Your subscription will end at the close of the current billing period.",
    "reactivated": "Your subscription will continue to renew.",
}


@router.get("/billing", response_class=HTMLResponse)
async def billing_page(
    request: Request,
    status: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    async with get_session() as session:
        usage = await usage_summary(session, user)
    return render(
        request,
        "settings/billing.html",
        {
            "user": user,
            "usage": usage,
            "plans": list(plan_prices()),
            "flash": BILLING_FLASH.get(status or ""),
        },
    )


@router.post("/billing/checkout")
async def billing_checkout(request: Request, plan: str = Form(""), user: UserModel = Depends(require_user)):
    async with get_session() as session:
        url = await create_checkout_session(session, user.id, plan)
    await log_action(request, "CHECKOUT_STARTED", user.email, user_id=user.id, details={"plan": plan})
    return redirect(request, url)


@router.post("/billing/portal")
async def billing_portal(request: Request, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        url = await create_portal_session(session, user.id)
    return redirect(request, url)


@router.post("/billing/cancel")
async def billing_cancel(request: Request, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        await cancel_subscription(session, user.id)
    await log_action(request, "SUBSCRIPTION_CANCELED", user.email, user_id=user.id, resource_type="user")
    return redirect(request, "/settings/billing?status=canceled")


@router.post("/billing/reactivate")
async def billing_reactivate(request: Request, user: UserModel = Depends(require_user)):
    async with get_session() as session:
        await reactivate_subscription(session, user.id)
    await log_action(request, "SUBSCRIPTION_REACTIVATED", user.email, user_id=user.id, resource_type="user")
    return redirect(request, "/settings/billing?status=reactivated")


@router.get("/billing/success")
async def billing_success(
    request: Request,
    session_id: str | None = Query(None),
    user: UserModel = Depends(require_user),
):
    """Stripe sends the user here after checkout; the webhook applies the subscription."""
    logger.info("checkout_completed", user_id=str(user.id), session_id=session_id)
    return redirect(request, "/settings/billing?status=updated")
