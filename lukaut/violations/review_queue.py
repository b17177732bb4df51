"""Position-indexed walk over an inspection's violations.

The queue is rebuilt from the database on every request; the only client
state is the current position.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.db.models import InspectionModel, ViolationModel
from lukaut.errors import invalid, not_found
from lukaut.inspections.service import get_inspection
from lukaut.models import ViolationStatus
from lukaut.violations.service import get_violation, list_violations, update_violation_status

DECISION_STATUSES = (ViolationStatus.CONFIRMED.value, ViolationStatus.REJECTED.value)


@dataclass(slots=True)
class ReviewQueue:
    inspection: InspectionModel
    violations: list[ViolationModel]
    position: int
    current: ViolationModel | None
    total: int
    pending: int
    confirmed: int
    rejected: int

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.pending == 0

    @property
    def reviewed(self) -> int:
        return self.confirmed + self.rejected

    @property
    def progress_percent(self) -> int:
        if not self.total:
            return 0
        return round(self.reviewed * 100 / self.total)

    @property
    def has_prev(self) -> bool:
        return self.position > 0

    @property
    def has_next(self) -> bool:
        return self.position < self.total - 1


def parse_position(raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def first_pending(violations: list[ViolationModel]) -> int | None:
    for index, violation in enumerate(violations):
        if violation.status == ViolationStatus.PENDING.value:
            return index
    return None


def next_pending(violations: list[ViolationModel], position: int) -> int | None:
    """Index of the next pending violation after ``position``, wrapping to the start."""
    count = len(violations)
    for step in range(1, count + 1):
        index = (position + step) % count
        if violations[index].status == ViolationStatus.PENDING.value:
            return index
    return None


def _build(
    inspection: InspectionModel,
    violations: list[ViolationModel],
    position: int,
    current: ViolationModel | None,
) -> ReviewQueue:
    counts = {s.value: 0 for s in ViolationStatus}
    for violation in violations:
        counts[violation.status] = counts.get(violation.status, 0) + 1
    return ReviewQueue(
        inspection=inspection,
        violations=violations,
        position=position,
        current=current,
        total=len(violations),
        pending=counts[ViolationStatus.PENDING.value],
        confirmed=counts[ViolationStatus.CONFIRMED.value],
        rejected=counts[ViolationStatus.REJECTED.value],
    )


async def load_queue(
    session: AsyncSession, inspection_id: UUID, user_id: UUID, position: int | None = None
) -> ReviewQueue:
    """Build the queue at ``position``.

    An out-of-range position falls back to 0; no position at all starts at
    the first pending violation (or 0 when none are pending).
    """
    inspection = await get_inspection(session, inspection_id, user_id)
    violations = await list_violations(session, inspection_id, user_id)

    if position is None:
        position = first_pending(violations) or 0
    elif not 0 <= position < len(violations):
        position = 0

    current = violations[position] if violations else None
    return _build(inspection, violations, position, current)


async def review_and_advance(
    session: AsyncSession,
    inspection_id: UUID,
    violation_id: UUID,
    user_id: UUID,
    status: str,
    position: int | None,
) -> ReviewQueue:
    """Record a decision and move to the next pending violation.

    When nothing is left pending the queue stays at the current position with
    no current violation, which the UI renders as the completion view.
    """
    op = "review_queue.decide"
    if status not in DECISION_STATUSES:
        raise invalid("Invalid status: must be 'confirmed' or 'rejected'", op=op)
    inspection = await get_inspection(session, inspection_id, user_id)
    violation = await get_violation(session, violation_id, user_id)
    if violation.inspection_id != inspection_id:
        raise not_found("Violation", violation_id, op=op)
    await update_violation_status(session, violation_id, user_id, status)
    violations = await list_violations(session, inspection_id, user_id)

    if not violations:
        return _build(inspection, violations, 0, None)

    if position is None or not 0 <= position < len(violations):
        position = next(
            (i for i, v in enumerate(violations) if v.id == violation_id), 0
        )

    next_index = next_pending(violations, position)
    if next_index is None:
        return _build(inspection, violations, position, None)
    return _build(inspection, violations, next_index, violations[next_index])
