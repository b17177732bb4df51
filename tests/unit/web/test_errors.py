"""Tests for lukaut.web.errors - error responses for JSON, browser and htmx clients."""

from __future__ import annotations

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from lukaut.errors import ECONFLICT, LukautError, ValidationError, not_found
from lukaut.web.auth import require_user
from lukaut.web.errors import VALIDATION_MESSAGE, register_exception_handlers


@pytest.fixture
def app():
    test_app = FastAPI()
    register_exception_handlers(test_app)

    @test_app.get("/missing")
    async def missing():
        raise not_found("Inspection", "abc", op="inspections.get")

    @test_app.get("/conflict")
    async def conflicting():
        raise LukautError(ECONFLICT, "Analysis is already in progress")

    @test_app.get("/invalid")
    async def invalid_input():
        raise ValidationError({"title": "Title is required"})

    @test_app.get("/boom")
    async def boom():
        raise RuntimeError("database password is hunter2")

    @test_app.get("/number/{value}")
    async def number(value: int):
        return {"value": value}

    @test_app.get("/private")
    async def private(user=Depends(require_user)):
        return {"ok": True}

    return test_app


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


class TestJsonClients:
    def test_not_found(self, client):
        response = client.get("/missing", headers={"Accept": "application/json"})

        assert response.status_code == 404
        assert response.json() == {
            "error": {"code": "not_found", "message": "Inspection with ID 'abc' not found"}
        }

    def test_conflict(self, client):
        response = client.get("/conflict", headers={"Accept": "application/json"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "conflict"

    def test_validation_fields(self, client):
        response = client.get("/invalid", headers={"Accept": "application/json"})

        assert response.status_code == 400
        assert response.json()["error"]["fields"] == {"title": "Title is required"}

    def test_request_validation(self, client):
        response = client.get("/number/abc", headers={"Accept": "application/json"})

        assert response.status_code == 400
        body = response.json()["error"]
        assert body["code"] == "invalid"
        assert "value" in body["fields"]

    def test_unhandled_error_is_generic(self, client):
        response = client.get("/boom", headers={"Accept": "application/json"})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal"
        assert "hunter2" not in response.text


class TestBrowserClients:
    def test_error_page(self, client):
        response = client.get("/missing")

        assert response.status_code == 404
        assert "text/html" in response.headers["content-type"]
        assert "Not found" in response.text
        assert "Inspection with ID &#39;abc&#39; not found" in response.text

    def test_validation_uses_generic_message(self, client):
        response = client.get("/invalid")

        assert response.status_code == 400
        assert VALIDATION_MESSAGE in response.text

    def test_unhandled_error_page(self, client):
        response = client.get("/boom")

        assert response.status_code == 500
        assert "Something went wrong" in response.text
        assert "hunter2" not in response.text


class TestHtmxClients:
    def test_fragment_only(self, client):
        response = client.get("/conflict", headers={"HX-Request": "true"})

        assert response.status_code == 409
        assert response.text.startswith('<div class="alert alert-error"')
        assert "<html" not in response.text


class TestAuthRedirects:
    def test_browser_redirected_to_login(self, client):
        response = client.get("/private?tab=open", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == "/login?return_to=%2Fprivate%3Ftab%3Dopen"

    def test_htmx_gets_hx_redirect(self, client):
        response = client.get("/private", headers={"HX-Request": "true"}, follow_redirects=False)

        assert response.status_code == 401
        assert response.headers["HX-Redirect"] == "/login"
