"""Unit tests for Stripe webhook signature checks and tier resolution."""

from __future__ import annotations

import hashlib
import hmac
import json
import time

import pytest

from lukaut.billing.stripe_webhook import construct_event, tier_for_subscription
from lukaut.config import BillingConfig
from lukaut.errors import EINVALID, LukautError

SECRET = "whsec_test"
BILLING = BillingConfig(webhook_secret=SECRET)
PING = b'{"id": "evt_ping", "type": "ping"}'


def signed_header(payload: bytes, secret: str = SECRET, timestamp: int | None = None) -> str:
    """Stripe-Signature header: HMAC-SHA256 of "{t}.{body}" keyed with the endpoint secret."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


class TestConstructEvent:
    def test_returns_event(self):
        payload = json.dumps({"id": "evt_1", "type": "invoice.payment_succeeded"}).encode()
        event = construct_event(payload, signed_header(payload), BILLING)
        assert event["id"] == "evt_1"

    def test_any_matching_v1_accepted(self):
        timestamp = int(time.time())
        valid = signed_header(PING, timestamp=timestamp).split(",")[1]
        header = f"t={timestamp},v1=deadbeef,{valid}"
        assert construct_event(PING, header, BILLING)["type"] == "ping"

    @pytest.mark.parametrize("header", [None, "", "v1=abc", "t=123", "t=abc,v1=def"])
    def test_malformed_header(self, header):
        with pytest.raises(LukautError) as exc_info:
            construct_event(PING, header, BILLING)
        assert exc_info.value.code == EINVALID

    def test_tampered_payload(self):
        header = signed_header(b'{"type": "charge.succeeded", "amount": 1}')
        with pytest.raises(LukautError, match="Invalid signature"):
            construct_event(b'{"type": "charge.succeeded", "amount": 1000}', header, BILLING)

    def test_wrong_secret(self):
        with pytest.raises(LukautError, match="Invalid signature"):
            construct_event(PING, signed_header(PING, secret="whsec_other"), BILLING)

    def test_stale_timestamp(self):
        header = signed_header(PING, timestamp=int(time.time()) - 3600)
        with pytest.raises(LukautError, match="Invalid signature"):
            construct_event(PING, header, BillingConfig(webhook_secret=SECRET, webhook_tolerance_seconds=300))

    def test_missing_secret(self):
        with pytest.raises(LukautError, match="not configured"):
            construct_event(PING, signed_header(PING), BillingConfig())

    @pytest.mark.parametrize("payload", [b"[1, 2, 3]", b"not json", b'{"id": "evt_1"}'])
    def test_rejects_non_event_body(self, payload):
        with pytest.raises(LukautError, match="Invalid payload"):
            construct_event(payload, signed_header(payload), BILLING)

    def test_uses_configured_secret(self):
        assert construct_event(PING, signed_header(PING))["type"] == "ping"


class TestTierForSubscription:
    def test_lookup_key(self):
        sub = {"items": {"data": [{"price": {"id": "price_1", "lookup_key": "professional_monthly"}}]}}
        assert tier_for_subscription(sub, BillingConfig()) == "professional"

    def test_price_metadata(self):
        sub = {"items": {"data": [{"price": {"id": "price_1", "metadata": {"tier": "Starter"}}}]}}
        assert tier_for_subscription(sub, BillingConfig()) == "starter"

    def test_configured_price_id(self):
        sub = {"items": {"data": [{"price": {"id": "price_pro"}}]}}
        billing = BillingConfig(starter_price_id="price_start", professional_price_id="price_pro")
        assert tier_for_subscription(sub, billing) == "professional"

    def test_subscription_metadata(self):
        sub = {"items": {"data": []}, "metadata": {"tier": "starter"}}
        assert tier_for_subscription(sub, BillingConfig()) == "starter"

    def test_unknown(self):
        sub = {"items": {"data": [{"price": {"id": "price_x", "lookup_key": "enterprise"}}]}}
        assert tier_for_subscription(sub, BillingConfig()) is None
