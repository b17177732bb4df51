"""Unit tests for domain enums, the inspection state machine and pagination."""

from __future__ import annotations

import pytest

from lukaut.db.models import InspectionModel, ReportModel, UserModel
from lukaut.models import (
    USER_SETTABLE_STATUSES,
    InspectionStatus,
    Page,
    can_transition,
    parse_page,
)


class TestStateMachine:
    @pytest.mark.parametrize(
        "current,target",
        [
            ("draft", "analyzing"),
            ("analyzing", "review"),
            ("analyzing", "draft"),
            ("review", "analyzing"),
            ("review", "completed"),
            ("completed", "review"),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target) is True

    @pytest.mark.parametrize(
        "current,target",
        [
            ("draft", "review"),
            ("draft", "completed"),
            ("draft", "draft"),
            ("analyzing", "completed"),
            ("review", "draft"),
            ("completed", "draft"),
            ("completed", "analyzing"),
        ],
    )
    def test_rejected(self, current, target):
        assert can_transition(current, target) is False

    def test_unknown_status_rejected(self):
        assert can_transition("archived", "draft") is False
        assert can_transition("draft", "archived") is False

    def test_accepts_enum_members(self):
        assert can_transition(InspectionStatus.REVIEW, InspectionStatus.COMPLETED)

    def test_user_settable_statuses(self):
        assert USER_SETTABLE_STATUSES == {InspectionStatus.REVIEW, InspectionStatus.COMPLETED}


class TestInspectionRules:
    @pytest.mark.parametrize(
        "status,editable,photos",
        [
            ("draft", True, True),
            ("analyzing", False, False),
            ("review", True, True),
            ("completed", False, False),
        ],
    )
    def test_editable_and_photo_rules(self, status, editable, photos):
        inspection = InspectionModel(status=status)
        assert inspection.is_editable is editable
        assert inspection.can_add_photos is photos

    def test_report_needs_confirmed_violation(self):
        inspection = InspectionModel(status="review")
        assert inspection.can_generate_report(0) is False
        assert inspection.can_generate_report(1) is True

    def test_draft_cannot_generate_report(self):
        assert InspectionModel(status="draft").can_generate_report(3) is False


class TestUserTier:
    def test_inactive_subscription_is_free(self):
        user = UserModel(subscription_status="inactive", subscription_tier="professional")
        assert user.effective_tier == "free"

    def test_active_subscription_uses_tier(self):
        user = UserModel(subscription_status="active", subscription_tier="starter")
        assert user.has_active_subscription
        assert user.effective_tier == "starter"

    def test_trialing_counts_as_active(self):
        assert UserModel(subscription_status="trialing").has_active_subscription


class TestReportKeys:
    def test_storage_key_for_format(self):
        report = ReportModel(pdf_storage_key="reports/a/b.pdf")
        assert report.storage_key_for("pdf") == "reports/a/b.pdf"
        assert report.storage_key_for("docx") is None


class TestPagination:
    @pytest.mark.parametrize("raw,expected", [(None, 1), ("3", 3), ("0", 1), ("-2", 1), ("abc", 1)])
    def test_parse_page(self, raw, expected):
        assert parse_page(raw) == expected

    def test_page_numbers(self):
        page = Page(items=[], total=45, page=2, page_size=20)
        assert page.total_pages == 3
        assert page.offset == 20
        assert page.has_prev
        assert page.has_next

    def test_empty_listing_has_one_page(self):
        page = Page(items=[], total=0, page=1)
        assert page.total_pages == 1
        assert not page.has_next
        assert not page.has_prev
