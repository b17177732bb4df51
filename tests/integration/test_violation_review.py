"""Integration tests for violations and the review queue."""

from __future__ import annotations

import pytest

from lukaut.db.models import RegulationModel
from lukaut.errors import EINVALID, ENOTFOUND, LukautError, ValidationError
from lukaut.inspections.service import count_violations
from lukaut.violations.review_queue import load_queue, review_and_advance
from lukaut.violations.service import (
    DetectedViolation,
    ViolationParams,
    batch_update_status,
    create_detected_violations,
    create_violation,
    delete_violation,
    list_linked_regulations,
    list_violations,
    update_violation,
    update_violation_status,
)

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]

DESCRIPTIONS = ("Missing guardrail on level 3", "Ladder not secured", "Open floor hole", "No eye protection")


@pytest.fixture
def add_violations(db_session):
    async def _add(inspection, owner, count=len(DESCRIPTIONS)):
        created = []
        for description in DESCRIPTIONS[:count]:
            created.append(
                await create_violation(
                    db_session, inspection.id, owner.id, ViolationParams(description=description, severity="serious")
                )
            )
        return created

    return _add


class TestViolations:
    async def test_manual_violation_is_pending(self, db_session, user, make_inspection):
        inspection = await make_inspection(user)

        violation = await create_violation(
            db_session, inspection.id, user.id, ViolationParams(description=" Open trench ", severity="critical")
        )

        assert violation.status == "pending"
        assert violation.description == "Open trench"
        assert violation.sort_order == 1

    async def test_validation(self, db_session, user, make_inspection):
        inspection = await make_inspection(user)

        with pytest.raises(ValidationError) as exc_info:
            await create_violation(db_session, inspection.id, user.id, ViolationParams(description="", severity="meh"))
        assert set(exc_info.value.fields) == {"description", "severity"}

    async def test_update_keeps_unset_fields(self, db_session, user, make_inspection, add_violations):
        inspection = await make_inspection(user)
        (violation,) = await add_violations(inspection, user, count=1)

        updated = await update_violation(db_session, violation.id, user.id, ViolationParams(inspector_notes="Fixed on site"))

        assert updated.description == DESCRIPTIONS[0]
        assert updated.severity == "serious"
        assert updated.inspector_notes == "Fixed on site"

    async def test_invalid_status(self, db_session, user, make_inspection, add_violations):
        inspection = await make_inspection(user)
        (violation,) = await add_violations(inspection, user, count=1)

        with pytest.raises(LukautError) as exc_info:
            await update_violation_status(db_session, violation.id, user.id, "maybe")
        assert exc_info.value.code == EINVALID

    async def test_batch_update(self, db_session, user, make_inspection, add_violations):
        inspection = await make_inspection(user)
        violations = await add_violations(inspection, user)

        count = await batch_update_status(
            db_session, inspection.id, user.id, [v.id for v in violations[:3]], "confirmed"
        )

        assert count == 3
        assert await count_violations(db_session, inspection.id, "confirmed") == 3
        assert await count_violations(db_session, inspection.id, "pending") == 1

    async def test_batch_ignores_other_inspections(self, db_session, user, make_inspection, add_violations):
        first = await make_inspection(user)
        second = await make_inspection(user)
        (other,) = await add_violations(second, user, count=1)

        assert await batch_update_status(db_session, first.id, user.id, [other.id], "rejected") == 0
        assert await batch_update_status(db_session, first.id, user.id, [], "rejected") == 0

    async def test_delete_returns_inspection(self, db_session, user, make_inspection, add_violations):
        inspection = await make_inspection(user)
        (violation,) = await add_violations(inspection, user, count=1)

        assert await delete_violation(db_session, violation.id, user.id) == inspection.id
        assert await list_violations(db_session, inspection.id, user.id) == []


class TestDetectedViolations:
    async def test_findings_linked_to_regulations(self, db_session, user, make_inspection):
        inspection = await make_inspection(user)
        for number in ("1926.501(b)(1)", "1926.502(d)"):
            db_session.add(RegulationModel(standard_number=number, title="Fall protection", category="Fall Protection", full_text="..."))
        await db_session.flush()

        (violation,) = await create_detected_violations(
            db_session,
            inspection.id,
            None,
            [
                DetectedViolation(
                    description="Worker at edge without harness",
                    severity="critical",
                    confidence="high",
                    location="north face",
                    regulation_numbers=["1926.502(d)", "1926.501(b)(1)", "9999.1"],
                )
            ],
        )

        assert violation.ai_description == "Worker at edge without harness (Location: north face)"
        assert violation.confidence == "high"
        linked = await list_linked_regulations(db_session, violation.id)
        assert [(r.regulation.standard_number, r.link.is_primary) for r in linked] == [
            ("1926.502(d)", True),
            ("1926.501(b)(1)", False),
        ]

    async def test_unknown_levels_fall_back(self, db_session, user, make_inspection):
        inspection = await make_inspection(user)

        (violation,) = await create_detected_violations(
            db_session,
            inspection.id,
            None,
            [DetectedViolation(description="Clutter", severity="severe", confidence="certain")],
        )

        assert violation.severity == "other"
        assert violation.confidence == "low"


class TestReviewQueue:
    async def test_starts_at_first_pending(self, db_session, user, make_inspection, add_violations):
        inspection = await make_inspection(user)
        violations = await add_violations(inspection, user)
        await update_violation_status(db_session, violations[0].id, user.id, "confirmed")

        queue = await load_queue(db_session, inspection.id, user.id)

        assert queue.position == 1
        assert queue.current.id == violations[1].id
        assert (queue.pending, queue.confirmed, queue.rejected) == (3, 1, 0)
        assert queue.progress_percent == 25

    async def test_out_of_range_position(self, db_session, user, make_inspection, add_violations):
        inspection = await make_inspection(user)
        violations = await add_violations(inspection, user)

        queue = await load_queue(db_session, inspection.id, user.id, position=99)

        assert queue.position == 0
        assert queue.current.id == violations[0].id

    async def test_advance_wraps_to_skipped(self, db_session, user, make_inspection, add_violations):
        inspection = await make_inspection(user)
        violations = await add_violations(inspection, user)

        queue = await review_and_advance(db_session, inspection.id, violations[3].id, user.id, "rejected", 3)

        assert queue.position == 0
        assert queue.current.id == violations[0].id
        assert queue.rejected == 1

    async def test_completes_when_nothing_pending(self, db_session, user, make_inspection, add_violations):
        inspection = await make_inspection(user)
        violations = await add_violations(inspection, user, count=2)
        await update_violation_status(db_session, violations[0].id, user.id, "confirmed")

        queue = await review_and_advance(db_session, inspection.id, violations[1].id, user.id, "confirmed", 1)

        assert queue.current is None
        assert queue.is_complete
        assert queue.progress_percent == 100

    async def test_empty_inspection(self, db_session, user, make_inspection):
        inspection = await make_inspection(user)

        queue = await load_queue(db_session, inspection.id, user.id)

        assert queue.current is None
        assert queue.total == 0
        assert not queue.is_complete

    @pytest.mark.parametrize("status", ["pending", "approved", ""])
    async def test_decision_must_confirm_or_reject(self, db_session, user, make_inspection, add_violations, status):
        inspection = await make_inspection(user)
        violations = await add_violations(inspection, user, count=1)
        await update_violation_status(db_session, violations[0].id, user.id, "confirmed")

        with pytest.raises(LukautError) as exc_info:
            await review_and_advance(db_session, inspection.id, violations[0].id, user.id, status, 0)

        assert exc_info.value.code == EINVALID
        assert exc_info.value.message == "Invalid status: must be 'confirmed' or 'rejected'"
        assert violations[0].status == "confirmed"

    async def test_violation_from_another_inspection(self, db_session, user, make_inspection, add_violations):
        queue_inspection = await make_inspection(user)
        other_inspection = await make_inspection(user, title="Warehouse Annex")
        stray = (await add_violations(other_inspection, user, count=1))[0]

        with pytest.raises(LukautError) as exc_info:
            await review_and_advance(db_session, queue_inspection.id, stray.id, user.id, "confirmed", 0)

        assert exc_info.value.code == ENOTFOUND
        assert stray.status == "pending"
