"""Report input assembled from the database, independent of output format."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.core.storage import Storage
from lukaut.db.models import ClientModel, ImageModel, ViolationModel, utcnow
from lukaut.errors import LukautError
from lukaut.inspections.service import get_inspection
from lukaut.accounts.service import get_user
from lukaut.models import ViolationSeverity, ViolationStatus
from lukaut.violations.service import list_linked_regulations

logger = structlog.get_logger(__name__)

SEVERITY_LABELS = {
    ViolationSeverity.CRITICAL.value: "Critical",
    ViolationSeverity.SERIOUS.value: "Serious",
    ViolationSeverity.OTHER.value: "Other-Than-Serious",
    ViolationSeverity.RECOMMENDATION.value: "Recommendation",
}


@dataclass(slots=True)
class ReportRegulation:
    standard_number: str
    title: str
    summary: str | None
    is_primary: bool


@dataclass(slots=True)
class ReportViolation:
    number: int
    description: str
    severity: str
    inspector_notes: str | None
    regulations: list[ReportRegulation] = field(default_factory=list)
    thumbnail: bytes | None = None

    @property
    def severity_label(self) -> str:
        return SEVERITY_LABELS.get(self.severity, self.severity.title())


@dataclass(slots=True)
class ReportParty:
    """Inspector or client block on the cover page."""

    name: str
    company: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    license_number: str | None = None


@dataclass(slots=True)
class ReportData:
    inspection_id: UUID
    site_name: str
    site_address: str
    inspection_date: date
    inspector: ReportParty
    client: ReportParty | None
    violations: list[ReportViolation]
    weather_conditions: str | None = None
    temperature: str | None = None
    inspector_notes: str | None = None
    generated_at: datetime = field(default_factory=utcnow)

    @property
    def severity_counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in ViolationSeverity}
        for violation in self.violations:
            counts[violation.severity] = counts.get(violation.severity, 0) + 1
        return counts


def format_address_lines(
    line1: str | None,
    line2: str | None,
    city: str | None,
    state: str | None,
    postal_code: str | None,
) -> str:
    """Multi-line postal address; empty string when nothing is set."""
    lines = [line for line in (line1, line2) if line]
    locality = ", ".join(p for p in (city, " ".join(q for q in (state, postal_code) if q)) if p)
    if locality:
        lines.append(locality)
    return "\n".join(lines)


async def prepare_report_data(
    session: AsyncSession,
    inspection_id: UUID,
    user_id: UUID,
    storage: Storage | None = None,
) -> ReportData:
    """Collect everything a report needs. Only confirmed violations are included."""
    inspection = await get_inspection(session, inspection_id, user_id)
    user = await get_user(session, user_id)

    inspector = ReportParty(
        name=user.business_name or user.name,
        company=user.company_name,
        email=user.business_email or user.email,
        phone=user.business_phone or user.phone,
        address=format_address_lines(
            user.business_address_line1,
            user.business_address_line2,
            user.business_city,
            user.business_state,
            user.business_postal_code,
        )
        or None,
        license_number=user.business_license_number,
    )

    client = None
    if inspection.client_id is not None:
        client_row = await session.get(ClientModel, inspection.client_id)
        if client_row is not None:
            client = ReportParty(
                name=client_row.name,
                email=client_row.email,
                phone=client_row.phone,
                address=format_address_lines(
                    client_row.address_line1,
                    client_row.address_line2,
                    client_row.city,
                    client_row.state,
                    client_row.postal_code,
                )
                or None,
            )

    rows = await session.execute(
        select(ViolationModel, ImageModel.thumbnail_key)
        .outerjoin(ImageModel, ImageModel.id == ViolationModel.image_id)
        .where(
            ViolationModel.inspection_id == inspection_id,
            ViolationModel.status == ViolationStatus.CONFIRMED.value,
        )
        .order_by(ViolationModel.sort_order, ViolationModel.created_at)
    )

    violations = []
    for number, (violation, thumb_key) in enumerate(rows.all(), start=1):
        linked = await list_linked_regulations(session, violation.id)
        thumbnail = None
        if storage is not None and thumb_key:
            try:
                thumbnail, _ = await storage.get(thumb_key)
            except LukautError as exc:
                logger.warning("report_thumbnail_missing", key=thumb_key, error=str(exc))
        violations.append(
            ReportViolation(
                number=number,
                description=violation.description,
                severity=violation.severity,
                inspector_notes=violation.inspector_notes,
                regulations=[
                    ReportRegulation(
                        standard_number=item.regulation.standard_number,
                        title=item.regulation.title,
                        summary=item.regulation.summary,
                        is_primary=item.link.is_primary,
                    )
                    for item in linked
                ],
                thumbnail=thumbnail,
            )
        )

    return ReportData(
        inspection_id=inspection.id,
        site_name=inspection.title,
        site_address=format_address_lines(
            inspection.address_line1,
            inspection.address_line2,
            inspection.city,
            inspection.state,
            inspection.postal_code,
        ),
        inspection_date=inspection.inspection_date,
        inspector=inspector,
        client=client,
        violations=violations,
        weather_conditions=inspection.weather_conditions,
        temperature=inspection.temperature,
        inspector_notes=inspection.inspector_notes,
    )
