"""Tests for lukaut.web.routes.regulations - search and citation linking."""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lukaut.db.models import RegulationModel, UserModel, ViolationModel, ViolationRegulationModel
from lukaut.errors import conflict, not_found
from lukaut.models import Page
from lukaut.regulations.service import RegulationMatch
from lukaut.violations.service import LinkedRegulation
from lukaut.web.auth import require_user
from lukaut.web.errors import register_exception_handlers
from lukaut.web.routes import regulations

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
    app.include_router(regulations.router)
    app.dependency_overrides[require_user] = lambda: account
    return TestClient(app)


@pytest.fixture
def guardrail():
    return RegulationModel(
        id=uuid4(),
        standard_number="1926.502(b)(1)",
        title="Guardrail systems - top rail height",
        category="Fall Protection",
        full_text="Top edge height of top rails shall be 42 inches plus or minus 3 inches.",
    )


@pytest.fixture
def violation():
    return ViolationModel(
        id=uuid4(),
        inspection_id=uuid4(),
        description="Guardrail top rail too low",
        severity="serious",
        status="pending",
    )


def results(*regs) -> Page[RegulationMatch]:
    return Page(items=[RegulationMatch(regulation=r, rank=1.0) for r in regs], total=len(regs), page=1)


class TestSearch:
    @patch("lukaut.web.routes.regulations.search_regulations", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_session", fake_session)
    def test_search_partial(self, mock_search, client, guardrail):
        mock_search.return_value = results(guardrail)

        response = client.get("/regulations/search?q=guardrail&category=Fall%20Protection", headers=HTMX)

        assert response.status_code == 200
        assert "<html" not in response.text
        assert "1926.502(b)(1)" in response.text
        assert mock_search.call_args.args[1] == "guardrail"
        assert mock_search.call_args.kwargs == {"category": "Fall Protection", "page": 1}

    @patch("lukaut.web.routes.regulations.list_linked_regulations", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_violation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.search_regulations", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_session", fake_session)
    def test_citing_marks_linked_regulations(
        self, mock_search, mock_get_violation, mock_linked, client, account, guardrail, violation
    ):
        other = RegulationModel(
            id=uuid4(), standard_number="1926.501(b)(1)", title="Unprotected sides", category="Fall Protection"
        )
        mock_search.return_value = results(guardrail, other)
        mock_get_violation.return_value = violation
        mock_linked.return_value = [
            LinkedRegulation(
                link=ViolationRegulationModel(violation_id=violation.id, regulation_id=guardrail.id),
                regulation=guardrail,
            )
        ]

        response = client.get(f"/regulations/search?q=edge&violation_id={violation.id}", headers=HTMX)

        assert 'class="badge">linked' in response.text
        assert f'hx-post="/violations/{violation.id}/regulations/{other.id}"' in response.text
        assert f'hx-post="/violations/{violation.id}/regulations/{guardrail.id}"' not in response.text
        assert mock_get_violation.call_args.args[1:] == (violation.id, account.id)

    @patch("lukaut.web.routes.regulations.get_violation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.search_regulations", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_session", fake_session)
    def test_malformed_violation_id_is_ignored(self, mock_search, mock_get_violation, client):
        mock_search.return_value = results()

        response = client.get("/regulations/search?q=ladder&violation_id=not-a-uuid", headers=HTMX)

        assert response.status_code == 200
        assert 'No regulations match "ladder"' in response.text
        mock_get_violation.assert_not_awaited()


class TestDetail:
    @patch("lukaut.web.routes.regulations.get_regulation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_session", fake_session)
    def test_detail_page(self, mock_get, client, guardrail):
        mock_get.return_value = guardrail

        response = client.get(f"/regulations/{guardrail.id}")

        assert response.status_code == 200
        assert "29 CFR 1926.502(b)(1)" in response.text
        assert "Cite for this violation" not in response.text

    @patch("lukaut.web.routes.regulations.get_regulation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_session", fake_session)
    def test_unknown_regulation(self, mock_get, client):
        regulation_id = uuid4()
        mock_get.side_effect = not_found("Regulation", regulation_id)

        response = client.get(f"/regulations/{regulation_id}", headers={"Accept": "application/json"})

        assert response.status_code == 404


class TestLinking:
    @patch("lukaut.web.routes.regulations.list_linked_regulations", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_violation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.link_regulation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_session", fake_session)
    def test_link_returns_card(
        self, mock_link, mock_get_violation, mock_linked, client, account, guardrail, violation
    ):
        mock_get_violation.return_value = violation
        mock_linked.return_value = [
            LinkedRegulation(
                link=ViolationRegulationModel(
                    violation_id=violation.id, regulation_id=guardrail.id, is_primary=True
                ),
                regulation=guardrail,
            )
        ]

        response = client.post(f"/violations/{violation.id}/regulations/{guardrail.id}", headers=HTMX)

        assert response.status_code == 200
        assert response.headers["HX-Trigger"] == "violationUpdated"
        assert "1926.502(b)(1)" in response.text
        assert mock_link.call_args.args[1:] == (violation.id, guardrail.id, account.id)

    @patch("lukaut.web.routes.regulations.link_regulation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_session", fake_session)
    def test_duplicate_link_conflicts(self, mock_link, client):
        mock_link.side_effect = conflict("Regulation is already linked to this violation", op="regulations.link")

        response = client.post(f"/violations/{uuid4()}/regulations/{uuid4()}", headers=HTMX)

        assert response.status_code == 409
        assert "already linked" in response.text

    @patch("lukaut.web.routes.regulations.list_linked_regulations", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_violation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.unlink_regulation", new_callable=AsyncMock)
    @patch("lukaut.web.routes.regulations.get_session", fake_session)
    def test_unlink_returns_card(self, mock_unlink, mock_get_violation, mock_linked, client, account, violation):
        mock_get_violation.return_value = violation
        mock_linked.return_value = []
        regulation_id = uuid4()

        response = client.delete(f"/violations/{violation.id}/regulations/{regulation_id}", headers=HTMX)

        assert response.status_code == 200
        assert response.headers["HX-Trigger"] == "violationUpdated"
        assert mock_unlink.call_args.args[1:] == (violation.id, regulation_id, account.id)
