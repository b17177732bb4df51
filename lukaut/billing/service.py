"""Subscription management through the Stripe API.

Checkout and the customer portal are hosted by Stripe; this module creates
the sessions and flips ``cancel_at_period_end`` for cancel and reactivate.
Subscription state itself is only written by webhook events. The Stripe
client is synchronous, so calls run in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any
from uuid import UUID

import stripe
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.accounts.service import get_user
from lukaut.config import get_config
from lukaut.db.models import UserModel
from lukaut.errors import ENOTIMPL, LukautError, conflict, internal, invalid
from lukaut.models import SubscriptionTier

logger = structlog.get_logger(__name__)

SUCCESS_PATH = "/settings/billing/success?session_id={CHECKOUT_SESSION_ID}"
BILLING_PATH = "/settings/billing"


def plan_prices() -> dict[str, str]:
    """Configured plans that can be bought, tier name to price id."""
    billing = get_config().billing
    prices = {
        SubscriptionTier.STARTER.value: billing.starter_price_id,
        SubscriptionTier.PROFESSIONAL.value: billing.professional_price_id,
    }
    return {tier: price for tier, price in prices.items() if price}


async def _stripe_call(fn, *args, op: str, **params) -> Any:
    api_key = get_config().billing.secret_key
    if not api_key:
        raise LukautError(ENOTIMPL, "Billing is not configured", op=op)
    try:
        return await asyncio.to_thread(fn, *args, api_key=api_key, **params)
    except stripe.StripeError as exc:
        logger.error("stripe_request_failed", op=op, error=str(exc))
        raise internal(exc, op=op) from exc


async def ensure_customer(session: AsyncSession, user: UserModel) -> str:
    if user.stripe_customer_id:
        return user.stripe_customer_id
    customer = await _stripe_call(
        stripe.Customer.create,
        op="billing.create_customer",
        email=user.email,
        name=user.company_name or user.name,
        metadata={"user_id": str(user.id)},
    )
    user.stripe_customer_id = customer.id
    await session.flush()
    logger.info("stripe_customer_created", user_id=str(user.id), customer=customer.id)
    return customer.id


async def create_checkout_session(session: AsyncSession, user_id: UUID, plan: str) -> str:
    """Start a subscription checkout for ``plan``. Returns the hosted checkout URL."""
    op = "billing.checkout"
    price_id = plan_prices().get((plan or "").strip().lower())
    if price_id is None:
        raise invalid(f"Unknown plan: {plan}", op=op)

    user = await get_user(session, user_id)
    if user.has_active_subscription:
        raise conflict("You already have an active subscription. Use the billing portal to change plans.", op=op)

    customer_id = await ensure_customer(session, user)
    base_url = get_config().base_url
    checkout = await _stripe_call(
        stripe.checkout.Session.create,
        op=op,
        customer=customer_id,
        mode="subscription",
        line_items=[{"price": price_id, "quantity": 1}],
        client_reference_id=str(user.id),
        metadata={"tier": plan.strip().lower()},
        success_url=base_url + SUCCESS_PATH,
        cancel_url=base_url + BILLING_PATH,
    )
    logger.info("checkout_session_created", user_id=str(user.id), plan=plan)
    return checkout.url


async def create_portal_session(session: AsyncSession, user_id: UUID) -> str:
    op = "billing.portal"
    user = await get_user(session, user_id)
    if not user.stripe_customer_id:
        raise invalid("No billing account yet. Choose a plan first.", op=op)
    portal = await _stripe_call(
        stripe.billing_portal.Session.create,
        op=op,
        customer=user.stripe_customer_id,
        return_url=get_config().base_url + BILLING_PATH,
    )
    return portal.url


async def _set_cancel_at_period_end(session: AsyncSession, user_id: UUID, cancel: bool, op: str) -> UserModel:
    user = await get_user(session, user_id)
    if not user.subscription_id:
        raise invalid("No active subscription to cancel." if cancel else "No subscription to reactivate.", op=op)
    if cancel and not user.has_active_subscription:
        raise invalid("No active subscription to cancel.", op=op)
    if user.cancel_at_period_end == cancel:
        raise conflict(
            "Subscription is already set to cancel." if cancel else "Subscription is not scheduled to cancel.",
            op=op,
        )

    await _stripe_call(stripe.Subscription.modify, user.subscription_id, op=op, cancel_at_period_end=cancel)
    user.cancel_at_period_end = cancel
    await session.flush()
    logger.info("subscription_cancel_flag_set", user_id=str(user.id), cancel_at_period_end=cancel)
    return user


async def cancel_subscription(session: AsyncSession, user_id: UUID) -> UserModel:
    """Cancel at the end of the current period; access continues until then."""
    return await _set_cancel_at_period_end(session, user_id, True, "billing.cancel")


async def reactivate_subscription(session: AsyncSession, user_id: UUID) -> UserModel:
    return await _set_cancel_at_period_end(session, user_id, False, "billing.reactivate")
