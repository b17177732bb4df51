"""Stripe webhook verification and subscription syncing.

Signatures are checked with ``stripe.Webhook.construct_event``; the verified
body is then handled as plain JSON.
"""

from __future__ import annotations

import json
from typing import Any
from uuid import UUID

import stripe
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.config import BillingConfig, get_config
from lukaut.db.models import UserModel
from lukaut.errors import invalid
from lukaut.models import SubscriptionStatus, SubscriptionTier

logger = structlog.get_logger(__name__)

PAID_TIERS = (SubscriptionTier.STARTER.value, SubscriptionTier.PROFESSIONAL.value)
KNOWN_STATUSES = {s.value for s in SubscriptionStatus}


def construct_event(payload: bytes, header: str | None, billing: BillingConfig | None = None) -> dict[str, Any]:
    """Verify and decode a webhook body. Raises EINVALID for anything Stripe did not sign."""
    op = "billing.construct_event"
    billing = billing or get_config().billing
    if not billing.webhook_secret:
        raise invalid("Webhook secret not configured", op=op)
    if not header:
        raise invalid("Missing signature", op=op)

    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise invalid("Invalid payload", op=op) from exc
    # construct_event only accepts JSON objects
    if not isinstance(event, dict) or "type" not in event:
        raise invalid("Invalid payload", op=op)

    try:
        stripe.Webhook.construct_event(
            payload, header, billing.webhook_secret, tolerance=billing.webhook_tolerance_seconds
        )
    except stripe.SignatureVerificationError as exc:
        logger.warning("stripe_signature_rejected", error=str(exc))
        raise invalid("Invalid signature", op=op) from exc
    return event


def _tier_name(value: str | None) -> str | None:
    if not value:
        return None
    value = value.lower()
    for tier in PAID_TIERS:
        if value == tier or value.startswith(f"{tier}_"):
            return tier
    return None


def tier_for_subscription(subscription: dict[str, Any], billing: BillingConfig | None = None) -> str | None:
    """Resolve the tier from a price lookup_key, metadata, or configured price ids."""
    billing = billing or get_config().billing
    price_tiers = {
        billing.starter_price_id: SubscriptionTier.STARTER.value,
        billing.professional_price_id: SubscriptionTier.PROFESSIONAL.value,
    }

    items = (subscription.get("items") or {}).get("data") or []
    for item in items:
        price = item.get("price") or {}
        tier = (
            _tier_name(price.get("lookup_key"))
            or _tier_name((price.get("metadata") or {}).get("tier"))
            or price_tiers.get(price.get("id"))
        )
        if tier:
            return tier
    return _tier_name((subscription.get("metadata") or {}).get("tier"))


async def _user_by_customer(session: AsyncSession, customer_id: str | None) -> UserModel | None:
    if not customer_id:
        return None
    return await session.scalar(select(UserModel).where(UserModel.stripe_customer_id == customer_id))


async def _checkout_user(session: AsyncSession, obj: dict[str, Any]) -> UserModel | None:
    reference = obj.get("client_reference_id")
    if reference:
        try:
            user = await session.get(UserModel, UUID(reference))
        except ValueError:
            user = None
        if user is not None:
            return user
    user = await _user_by_customer(session, obj.get("customer"))
    if user is None and (email := (obj.get("customer_details") or {}).get("email") or obj.get("customer_email")):
        user = await session.scalar(select(UserModel).where(UserModel.email == email.strip().lower()))
    return user


async def handle_event(session: AsyncSession, event: dict[str, Any]) -> bool:
    """Apply a verified event. Returns False for unhandled types or unknown customers."""
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}
    log = logger.bind(event_id=event.get("id"), event_type=event_type)

    if event_type == "checkout.session.completed":
        user = await _checkout_user(session, obj)
        if user is None:
            log.warning("stripe_user_not_found", customer=obj.get("customer"))
            return False
        user.stripe_customer_id = obj.get("customer") or user.stripe_customer_id
        user.subscription_id = obj.get("subscription") or user.subscription_id
        user.subscription_status = SubscriptionStatus.ACTIVE.value

    elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
        user = await _user_by_customer(session, obj.get("customer"))
        if user is None:
            log.warning("stripe_user_not_found", customer=obj.get("customer"))
            return False
        status = obj.get("status")
        if status in KNOWN_STATUSES:
            user.subscription_status = status
        elif status in ("incomplete", "incomplete_expired", "paused"):
            user.subscription_status = SubscriptionStatus.INACTIVE.value
        user.subscription_tier = tier_for_subscription(obj) or user.subscription_tier
        user.subscription_id = obj.get("id") or user.subscription_id
        user.cancel_at_period_end = bool(obj.get("cancel_at_period_end"))

    elif event_type == "customer.subscription.deleted":
        user = await _user_by_customer(session, obj.get("customer"))
        if user is None:
            log.warning("stripe_user_not_found", customer=obj.get("customer"))
            return False
        user.subscription_status = SubscriptionStatus.INACTIVE.value
        user.subscription_tier = None
        user.cancel_at_period_end = False

    elif event_type in ("invoice.payment_succeeded", "invoice.payment_failed"):
        user = await _user_by_customer(session, obj.get("customer"))
        if user is None:
            log.warning("stripe_user_not_found", customer=obj.get("customer"))
            return False
        user.subscription_status = (
            SubscriptionStatus.ACTIVE.value
            if event_type == "invoice.payment_succeeded"
            else SubscriptionStatus.PAST_DUE.value
        )

    else:
        log.info("stripe_event_ignored")
        return False

    await session.flush()
    log.info(
        "stripe_event_applied",
        user_id=str(user.id),
        status=user.subscription_status,
        tier=user.subscription_tier,
    )
    return True
