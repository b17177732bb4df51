"""Tests for lukaut.web.routes.violations."""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lukaut.db.models import RegulationModel, UserModel, ViolationModel, ViolationRegulationModel
from lukaut.errors import invalid, not_found
from lukaut.violations.service import LinkedRegulation, ViolationParams
from lukaut.web.auth import require_user
from lukaut.web.errors import register_exception_handlers
from lukaut.web.routes import violations

HTMX = {"HX-Request": "true"}


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
    app.include_router(violations.router)
    app.dependency_overrides[require_user] = lambda: account
    return TestClient(app)


@pytest.fixture
def violation():
    return ViolationModel(
        id=uuid4(),
        inspection_id=uuid4(),
        description="Open floor edge without guardrail",
        severity="critical",
        status="confirmed",
    )


@pytest.fixture
def card(violation):
    """Patch the lookups behind the violation card partial."""
    regulation = RegulationModel(id=uuid4(), standard_number="1926.501(b)(1)", title="Unprotected sides and edges")
    linked = LinkedRegulation(
        link=ViolationRegulationModel(violation_id=violation.id, regulation_id=regulation.id, is_primary=True),
        regulation=regulation,
    )
    with (
        patch("lukaut.web.routes.violations.get_violation", new=AsyncMock(return_value=violation)),
        patch("lukaut.web.routes.violations.list_linked_regulations", new=AsyncMock(return_value=[linked])),
        patch("lukaut.web.routes.violations.list_images", new=AsyncMock(return_value=[])),
    ):
        yield violation


class TestCreate:
    @patch("lukaut.web.routes.violations.create_violation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_htmx_create_returns_card(self, mock_create, client, account, card):
        mock_create.return_value = card

        response = client.post(
            f"/inspections/{card.inspection_id}/violations",
            data={"description": "Open floor edge without guardrail", "severity": "critical"},
            headers=HTMX,
        )

        assert response.status_code == 200
        assert response.headers["HX-Trigger"] == "violationUpdated"
        assert f'id="violation-{card.id}"' in response.text
        assert "1926.501(b)(1)" in response.text
        assert mock_create.call_args.args[1:] == (
            card.inspection_id,
            account.id,
            ViolationParams(description="Open floor edge without guardrail", severity="critical"),
        )

    @patch("lukaut.web.routes.violations.create_violation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_plain_form_redirects(self, mock_create, client, card):
        mock_create.return_value = card

        response = client.post(
            f"/inspections/{card.inspection_id}/violations",
            data={"description": "Loose debris", "severity": "other"},
            follow_redirects=False,
        )

        assert response.status_code == 303
        assert response.headers["location"] == f"/inspections/{card.inspection_id}"


class TestUpdate:
    @patch("lukaut.web.routes.violations.update_violation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_edit_returns_card(self, mock_update, client, account, card):
        image_id = uuid4()

        response = client.put(
            f"/violations/{card.id}",
            data={"inspector_notes": "Foreman notified", "image_id": str(image_id)},
            headers=HTMX,
        )

        assert response.status_code == 200
        assert response.headers["HX-Trigger"] == "violationUpdated"
        assert mock_update.call_args.args[1:] == (
            card.id,
            account.id,
            ViolationParams(inspector_notes="Foreman notified", image_id=image_id),
        )

    @patch("lukaut.web.routes.violations.update_violation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_foreign_violation(self, mock_update, client):
        violation_id = uuid4()
        mock_update.side_effect = not_found("Violation", violation_id)

        response = client.put(f"/violations/{violation_id}", data={"description": "x"}, headers=HTMX)

        assert response.status_code == 404

    @patch("lukaut.web.routes.violations.update_violation_status", new_callable=AsyncMock)
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_status_change(self, mock_status, client, account, card):
        response = client.put(f"/violations/{card.id}/status", data={"status": "confirmed"}, headers=HTMX)

        assert response.status_code == 200
        assert response.headers["HX-Trigger"] == "violationUpdated"
        mock_status.assert_awaited_once()
        assert mock_status.call_args.args[1:] == (card.id, account.id, "confirmed")
        # A confirmed card offers reject and reset but not confirm
        assert '"status": "confirmed"' not in response.text
        assert '"status": "pending"' in response.text

    @patch("lukaut.web.routes.violations.update_violation_status", new_callable=AsyncMock)
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_invalid_status(self, mock_status, client):
        mock_status.side_effect = invalid("Invalid status", op="violations.status")

        response = client.put(f"/violations/{uuid4()}/status", data={"status": "maybe"}, headers=HTMX)

        assert response.status_code == 400


class TestBatchStatus:
    @patch("lukaut.web.routes.violations.batch_update_status", new_callable=AsyncMock)
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_batch_update(self, mock_batch, client, account):
        inspection_id = uuid4()
        ids = [uuid4(), uuid4()]
        mock_batch.return_value = 2

        response = client.post(
            f"/inspections/{inspection_id}/violations/batch-status",
            json={"violation_ids": [str(i) for i in ids], "status": "rejected"},
        )

        assert response.status_code == 200
        assert response.json() == {"updated": 2, "status": "rejected"}
        assert mock_batch.call_args.args[1:] == (inspection_id, account.id, ids, "rejected")

    @patch("lukaut.web.routes.violations.batch_update_status", new_callable=AsyncMock)
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_empty_batch_rejected(self, mock_batch, client):
        response = client.post(
            f"/inspections/{uuid4()}/violations/batch-status",
            json={"violation_ids": [], "status": "rejected"},
        )

        assert response.status_code == 400
        assert "violation_ids" in response.json()["error"]["fields"]
        mock_batch.assert_not_awaited()


class TestDelete:
    @patch("lukaut.web.routes.violations.delete_violation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_htmx_delete_empties_card(self, mock_delete, client):
        mock_delete.return_value = uuid4()

        response = client.delete(f"/violations/{uuid4()}", headers=HTMX)

        assert response.status_code == 200
        assert response.text == ""
        assert response.headers["HX-Trigger"] == "violationUpdated"

    @patch("lukaut.web.routes.violations.delete_violation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_plain_delete_redirects_to_inspection(self, mock_delete, client):
        inspection_id = uuid4()
        mock_delete.return_value = inspection_id

        response = client.delete(f"/violations/{uuid4()}", follow_redirects=False)

        assert response.status_code == 303
        assert response.headers["location"] == f"/inspections/{inspection_id}"


class TestCard:
    @patch("lukaut.web.routes.violations.get_session", fake_session)
    def test_edit_form(self, client, card):
        response = client.get(f"/violations/{card.id}/card?edit=true", headers=HTMX)

        assert response.status_code == 200
        assert f'hx-put="/violations/{card.id}"' in response.text
        assert "Open floor edge without guardrail</textarea>" in response.text
