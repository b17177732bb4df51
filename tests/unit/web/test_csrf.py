"""Tests for lukaut.web.csrf - double-submit cookie protection."""

from __future__ import annotations

import pytest
from fastapi import FastAPI, Form
from fastapi.testclient import TestClient

from lukaut.web.csrf import CSRF_COOKIE_NAME, CSRF_HEADER_NAME, CSRFMiddleware, is_exempt_path


@pytest.fixture
def app():
    test_app = FastAPI()
    test_app.add_middleware(CSRFMiddleware)

    @test_app.get("/form")
    async def form_page():
        return {"ok": True}

    @test_app.post("/submit")
    async def submit(name: str = Form("")):
        return {"name": name}

    @test_app.post("/webhooks/stripe")
    async def webhook():
        return {"received": True}

    return test_app


@pytest.fixture
def client(app):
    return TestClient(app)


def test_safe_request_mints_cookie(client):
    response = client.get("/form")

    assert response.status_code == 200
    assert CSRF_COOKIE_NAME in response.cookies


def test_existing_cookie_not_replaced(client):
    client.cookies.set(CSRF_COOKIE_NAME, "existing")

    response = client.get("/form")

    assert "set-cookie" not in response.headers


def test_post_without_token_rejected(client):
    response = client.post("/submit", data={"name": "x"})

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "forbidden"


def test_post_with_mismatched_header_rejected(client):
    client.cookies.set(CSRF_COOKIE_NAME, "cookie-token")

    response = client.post("/submit", data={"name": "x"}, headers={CSRF_HEADER_NAME: "other"})

    assert response.status_code == 403


def test_post_with_header_token(client):
    client.get("/form")
    token = client.cookies[CSRF_COOKIE_NAME]

    response = client.post("/submit", data={"name": "Acme"}, headers={CSRF_HEADER_NAME: token})

    assert response.status_code == 200
    assert response.json() == {"name": "Acme"}


def test_post_with_form_field_keeps_body_readable(client):
    client.get("/form")
    token = client.cookies[CSRF_COOKIE_NAME]

    response = client.post("/submit", data={"name": "Acme", "csrf_token": token})

    assert response.status_code == 200
    assert response.json() == {"name": "Acme"}


def test_webhooks_exempt(client):
    response = client.post("/webhooks/stripe", content=b"{}")

    assert response.status_code == 200


@pytest.mark.parametrize(
    "path,exempt",
    [("/webhooks/stripe", True), ("/health", True), ("/metrics", True), ("/login", False)],
)
def test_is_exempt_path(path, exempt):
    assert is_exempt_path(path) is exempt
