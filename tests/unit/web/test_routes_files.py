"""Tests for lukaut.web.routes.files - signed downloads."""

from __future__ import annotations

import asyncio
import time
from urllib.parse import urlsplit

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lukaut.core.storage import sign_key
from lukaut.web.errors import register_exception_handlers
from lukaut.web.routes import files

KEY = "reports/inspection-1/report-1.pdf"


@pytest.fixture
def client(storage):
    asyncio.run(storage.put(KEY, b"%PDF-1.7 test", "application/pdf"))
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(files.router)
    return TestClient(app)


def test_signed_url_serves_file(client, storage):
    parts = urlsplit(storage.url(KEY, ttl_seconds=60))

    response = client.get(f"{parts.path}?{parts.query}")

    assert response.status_code == 200
    assert response.content == b"%PDF-1.7 test"
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["cache-control"].startswith("private")


def test_bad_signature_forbidden(client):
    expires = int(time.time()) + 60

    response = client.get(f"/files/{KEY}", params={"expires": expires, "sig": "0" * 64})

    assert response.status_code == 403


def test_expired_link_forbidden(client):
    expires = int(time.time()) - 10
    sig = sign_key("test-secret-key", KEY, expires)

    response = client.get(f"/files/{KEY}", params={"expires": expires, "sig": sig})

    assert response.status_code == 403


def test_signature_for_other_key_forbidden(client):
    expires = int(time.time()) + 60
    sig = sign_key("test-secret-key", "reports/other.pdf", expires)

    response = client.get(f"/files/{KEY}", params={"expires": expires, "sig": sig})

    assert response.status_code == 403


def test_missing_object_is_404(client):
    key = "reports/missing.pdf"
    expires = int(time.time()) + 60

    response = client.get(f"/files/{key}", params={"expires": expires, "sig": sign_key("test-secret-key", key, expires)})

    assert response.status_code == 404
