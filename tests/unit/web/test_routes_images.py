"""Tests for lukaut.web.routes.images - uploads, removal and signed redirects."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lukaut.db.models import ImageModel, InspectionModel, UserModel
from lukaut.errors import forbidden, invalid, not_found
from lukaut.inspections.service import AnalysisStatus
from lukaut.web.auth import require_user
from lukaut.web.errors import register_exception_handlers
from lukaut.web.routes import images

HTMX = {"HX-Request": "true"}
CLOSED_MESSAGE = "Photos can only be added while the inspection is in draft or review"


@asynccontextmanager
async def fake_session():
    yield MagicMock()


@pytest.fixture
def account():
    return UserModel(id=uuid4(), email="pat@example.com", name="Pat Inspector", is_active=True)


@pytest.fixture
def client(account):
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(images.router)
    app.dependency_overrides[require_user] = lambda: account
    return TestClient(app)


@pytest.fixture
def inspection(account):
    return InspectionModel(
        id=uuid4(),
        user_id=account.id,
        title="Riverside Tower Phase 2",
        status="draft",
        inspection_date=date(2026, 3, 2),
        address_line1="100 River Rd",
        city="Austin",
        state="TX",
        postal_code="78701",
    )


@pytest.fixture
def grid(inspection):
    """Patch the services the photo grid partial reads from."""
    photo = ImageModel(
        id=uuid4(),
        inspection_id=inspection.id,
        storage_key="inspections/a/deck.png",
        original_filename="deck.png",
        analysis_status="pending",
    )
    status = AnalysisStatus(
        inspection_id=inspection.id,
        status=inspection.status,
        can_analyze=True,
        is_analyzing=False,
        has_images=True,
        pending_images=1,
        total_images=1,
        analyzed_images=0,
        violation_count=0,
        message="1 photo ready to analyze",
    )
    with (
        patch("lukaut.web.routes.images.get_inspection", new=AsyncMock(return_value=inspection)),
        patch("lukaut.web.routes.images.list_images", new=AsyncMock(return_value=[photo])),
        patch("lukaut.web.routes.images.get_analysis_status", new=AsyncMock(return_value=status)),
    ):
        yield photo


def photo_files(*names):
    return [("files", (name, b"\x89PNG\r\n", "image/png")) for name in names]


class TestUpload:
    @patch("lukaut.web.routes.images.upload_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_htmx_upload_returns_grid_and_event(self, mock_upload, client, account, inspection, grid):
        response = client.post(
            f"/inspections/{inspection.id}/images", files=photo_files("deck.png", "stairs.png"), headers=HTMX
        )

        assert response.status_code == 200
        assert response.headers["HX-Trigger"] == "imagesUploaded"
        assert f"/images/{grid.id}/thumbnail" in response.text
        assert mock_upload.await_count == 2
        assert mock_upload.call_args_list[0].args[1:4] == (inspection.id, account.id, "deck.png")

    @patch("lukaut.web.routes.images.upload_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_bad_file_reported_next_to_grid(self, mock_upload, client, inspection, grid):
        mock_upload.side_effect = [None, invalid("Unsupported image type", op="images.upload")]

        response = client.post(
            f"/inspections/{inspection.id}/images", files=photo_files("deck.png", "notes.txt"), headers=HTMX
        )

        assert response.status_code == 200
        assert response.headers["HX-Trigger"] == "imagesUploaded"
        assert "notes.txt: Unsupported image type" in response.text

    @patch("lukaut.web.routes.images.upload_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_all_rejected_sends_no_event(self, mock_upload, client, inspection, grid):
        mock_upload.side_effect = invalid("Unsupported image type", op="images.upload")

        response = client.post(f"/inspections/{inspection.id}/images", files=photo_files("notes.txt"), headers=HTMX)

        assert response.status_code == 200
        assert "HX-Trigger" not in response.headers

    @patch("lukaut.web.routes.images.upload_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_completed_inspection_forbidden(self, mock_upload, client):
        mock_upload.side_effect = forbidden(CLOSED_MESSAGE, op="images.upload")

        response = client.post(f"/inspections/{uuid4()}/images", files=photo_files("deck.png"), headers=HTMX)

        assert response.status_code == 403
        assert CLOSED_MESSAGE in response.text

    @patch("lukaut.web.routes.images.upload_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_no_files(self, mock_upload, client):
        response = client.post(f"/inspections/{uuid4()}/images", data={"note": "x"}, headers=HTMX)

        assert response.status_code == 400
        assert "Choose at least one photo" in response.text
        mock_upload.assert_not_awaited()

    @patch("lukaut.web.routes.images.upload_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_oversized_request(self, mock_upload, client):
        response = client.post(
            f"/inspections/{uuid4()}/images",
            files=photo_files("deck.png"),
            headers={**HTMX, "Content-Length": str(images.MAX_FORM_SIZE + 1)},
        )

        assert response.status_code == 413
        mock_upload.assert_not_awaited()

    @patch("lukaut.web.routes.images.upload_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_plain_form_redirects(self, mock_upload, client):
        inspection_id = uuid4()

        response = client.post(
            f"/inspections/{inspection_id}/images", files=photo_files("deck.png"), follow_redirects=False
        )

        assert response.status_code == 303
        assert response.headers["location"] == f"/inspections/{inspection_id}"


class TestDelete:
    @patch("lukaut.web.routes.images.delete_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_htmx_delete_returns_grid(self, mock_delete, client, account, inspection, grid):
        image_id = uuid4()

        response = client.delete(f"/inspections/{inspection.id}/images/{image_id}", headers=HTMX)

        assert response.status_code == 200
        assert 'id="images"' in response.text
        assert mock_delete.call_args.args[1:] == (inspection.id, image_id, account.id)

    @patch("lukaut.web.routes.images.delete_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_delete_from_completed_inspection(self, mock_delete, client):
        mock_delete.side_effect = forbidden(
            "Photos can only be removed while the inspection is in draft or review", op="images.delete"
        )

        response = client.delete(f"/inspections/{uuid4()}/images/{uuid4()}", headers=HTMX)

        assert response.status_code == 403


class TestSignedRedirects:
    @patch("lukaut.web.routes.images.image_url")
    @patch("lukaut.web.routes.images.get_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_thumbnail_redirects_to_signed_url(self, mock_get, mock_url, client):
        mock_url.return_value = "http://testserver/files/thumbs/a.jpg?expires=1&sig=abc"

        response = client.get(f"/images/{uuid4()}/thumbnail", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == mock_url.return_value
        assert mock_url.call_args.args[1:] == ("thumbnail", images.IMAGE_URL_TTL)

    @patch("lukaut.web.routes.images.get_image", new_callable=AsyncMock)
    @patch("lukaut.web.routes.images.get_session", fake_session)
    def test_foreign_image_not_found(self, mock_get, client):
        image_id = uuid4()
        mock_get.side_effect = not_found("Image", image_id)

        response = client.get(f"/images/{image_id}/original", follow_redirects=False)

        assert response.status_code == 404
