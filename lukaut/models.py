"""Domain enums, the inspection state machine, and shared value types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from math import ceil
from typing import Generic, TypeVar

T = TypeVar("T")


class InspectionStatus(str, Enum):
    """Inspection lifecycle states."""

    DRAFT = "draft"
    ANALYZING = "analyzing"
    REVIEW = "review"
    COMPLETED = "completed"


class ViolationStatus(str, Enum):
    """Inspector review outcome for a violation."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class ViolationSeverity(str, Enum):
    CRITICAL = "critical"
    SERIOUS = "serious"
    OTHER = "other"
    RECOMMENDATION = "recommendation"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ImageAnalysisStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    ANALYZE_INSPECTION = "analyze_inspection"
    GENERATE_REPORT = "generate_report"


class ReportFormat(str, Enum):
    PDF = "pdf"
    DOCX = "docx"


class SubscriptionStatus(str, Enum):
    INACTIVE = "inactive"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"


class SubscriptionTier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"


# Job priorities
PRIORITY_LOW = 0
PRIORITY_NORMAL = 10
PRIORITY_HIGH = 20


# ============================================================================
# Inspection state machine
# ============================================================================

ALLOWED_TRANSITIONS: dict[InspectionStatus, frozenset[InspectionStatus]] = {
    InspectionStatus.DRAFT: frozenset({InspectionStatus.ANALYZING}),
    InspectionStatus.ANALYZING: frozenset({InspectionStatus.REVIEW, InspectionStatus.DRAFT}),
    InspectionStatus.REVIEW: frozenset({InspectionStatus.ANALYZING, InspectionStatus.COMPLETED}),
    InspectionStatus.COMPLETED: frozenset({InspectionStatus.REVIEW}),
}

# Targets a user may request directly; the rest are driven by the worker.
USER_SETTABLE_STATUSES = frozenset({InspectionStatus.REVIEW, InspectionStatus.COMPLETED})


def can_transition(current: str | InspectionStatus, target: str | InspectionStatus) -> bool:
    """Return True if the inspection state machine permits current -> target."""
    try:
        current = InspectionStatus(current)
        target = InspectionStatus(target)
    except ValueError:
        return False
    return target in ALLOWED_TRANSITIONS[current]


# ============================================================================
# Pagination
# ============================================================================

DEFAULT_PAGE_SIZE = 20


def parse_page(raw: str | None) -> int:
    """Parse a ``page`` query value, clamping anything invalid to 1."""
    try:
        page = int(raw) if raw is not None else 1
    except (TypeError, ValueError):
        return 1
    return page if page >= 1 else 1


@dataclass(slots=True)
class Page(Generic[T]):
    """One page of a listing plus the numbers templates need."""

    items: list[T]
    total: int
    page: int
    page_size: int = DEFAULT_PAGE_SIZE

    @property
    def total_pages(self) -> int:
        return max(1, ceil(self.total / self.page_size)) if self.page_size else 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size
