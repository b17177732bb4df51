"""SQLAlchemy async database models for Lukaut.

Every tenant-owned table carries a ``user_id``; services always filter on it.
Child rows (images, violations, regulation links) cascade with their
inspection through foreign keys.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class UserModel(Base):
    """Inspector account, also the tenant boundary."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_name: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Subscription
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), index=True)
    subscription_id: Mapped[str | None] = mapped_column(String(255))
    subscription_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="inactive"
    )
    subscription_tier: Mapped[str | None] = mapped_column(String(20))
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_verified_at: Mapped[datetime | None] = mapped_column(DateTime)
    last_login: Mapped[datetime | None] = mapped_column(DateTime)

    # Business profile (shown on reports)
    business_name: Mapped[str | None] = mapped_column(String(255))
    business_email: Mapped[str | None] = mapped_column(String(254))
    business_phone: Mapped[str | None] = mapped_column(String(50))
    business_address_line1: Mapped[str | None] = mapped_column(String(255))
    business_address_line2: Mapped[str | None] = mapped_column(String(255))
    business_city: Mapped[str | None] = mapped_column(String(100))
    business_state: Mapped[str | None] = mapped_column(String(50))
    business_postal_code: Mapped[str | None] = mapped_column(String(20))
    business_license_number: Mapped[str | None] = mapped_column(String(100))
    business_logo_url: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "subscription_status IN ('inactive', 'trialing', 'active', 'past_due', 'canceled', 'unpaid')",
            name="check_subscription_status",
        ),
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email

    @property
    def has_active_subscription(self) -> bool:
        return self.subscription_status in ("active", "trialing")

    @property
    def effective_tier(self) -> str:
        if self.has_active_subscription and self.subscription_tier:
            return self.subscription_tier
        return "free"


class EmailTokenModel(Base):
    """Single-use token for email verification or password reset.

    Only the SHA-256 hash of the token is stored.
    """

    __tablename__ = "email_tokens"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    purpose: Mapped[str] = mapped_column(String(30), nullable=False)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "purpose IN ('email_verification', 'password_reset')", name="check_token_purpose"
        ),
    )


class ClientModel(Base):
    """A customer of the inspector (typically a construction company)."""

    __tablename__ = "clients"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(254))
    phone: Mapped[str | None] = mapped_column(String(50))
    address_line1: Mapped[str | None] = mapped_column(String(255))
    address_line2: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(50))
    postal_code: Mapped[str | None] = mapped_column(String(20))
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (Index("idx_clients_user_name", "user_id", "name"),)

    @property
    def has_address(self) -> bool:
        return bool(self.address_line1 or self.city)

    @property
    def full_address(self) -> str:
        return format_address(
            self.address_line1, self.address_line2, self.city, self.state, self.postal_code
        )


class SiteModel(Base):
    """Legacy job-site record. Inspections now embed their own address."""

    __tablename__ = "sites"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="RESTRICT"), index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line2: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    @property
    def full_address(self) -> str:
        return format_address(
            self.address_line1, self.address_line2, self.city, self.state, self.postal_code
        )


class InspectionModel(Base):
    """A single site inspection and its lifecycle status."""

    __tablename__ = "inspections"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="RESTRICT"), index=True
    )
    site_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("sites.id", ondelete="SET NULL"), index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    inspection_date: Mapped[date] = mapped_column(Date, nullable=False)
    weather_conditions: Mapped[str | None] = mapped_column(String(100))
    temperature: Mapped[str | None] = mapped_column(String(50))
    inspector_notes: Mapped[str | None] = mapped_column(Text)

    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line2: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'analyzing', 'review', 'completed')",
            name="check_inspection_status",
        ),
        Index("idx_inspections_user_status", "user_id", "status"),
        Index("idx_inspections_user_date", "user_id", "inspection_date"),
    )

    @property
    def is_editable(self) -> bool:
        return self.status in ("draft", "review")

    @property
    def can_add_photos(self) -> bool:
        return self.status in ("draft", "review")

    @property
    def full_address(self) -> str:
        return format_address(
            self.address_line1, self.address_line2, self.city, self.state, self.postal_code
        )

    def can_generate_report(self, confirmed_count: int) -> bool:
        return self.status in ("review", "completed") and confirmed_count > 0


class ImageModel(Base):
    """Photo uploaded to an inspection."""

    __tablename__ = "images"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    inspection_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    storage_key: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_key: Mapped[str | None] = mapped_column(Text)
    original_filename: Mapped[str | None] = mapped_column(String(255))
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    width: Mapped[int | None] = mapped_column(Integer)
    height: Mapped[int | None] = mapped_column(Integer)
    analysis_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    analysis_completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "analysis_status IN ('pending', 'analyzing', 'completed', 'failed')",
            name="check_image_analysis_status",
        ),
    )

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / (1024 * 1024), 2)

    @property
    def aspect_ratio(self) -> float | None:
        if not self.width or not self.height:
            return None
        return self.width / self.height


class RegulationModel(Base):
    """OSHA standard. Reference data, read-only for the application."""

    __tablename__ = "regulations"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    standard_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    subcategory: Mapped[str | None] = mapped_column(String(100))
    full_text: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str | None] = mapped_column(Text)
    severity_typical: Mapped[str | None] = mapped_column(String(20))
    parent_standard: Mapped[str | None] = mapped_column(String(50))
    effective_date: Mapped[date | None] = mapped_column(Date)
    last_updated: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    @property
    def citation(self) -> str:
        return f"{self.standard_number} - {self.title}"


class ViolationModel(Base):
    """Safety violation found during an inspection."""

    __tablename__ = "violations"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    inspection_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("images.id", ondelete="SET NULL"), index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    ai_description: Mapped[str | None] = mapped_column(Text)
    confidence: Mapped[str | None] = mapped_column(String(10))
    bounding_box: Mapped[dict | None] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="other")
    inspector_notes: Mapped[str | None] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'rejected')", name="check_violation_status"
        ),
        CheckConstraint(
            "severity IN ('critical', 'serious', 'other', 'recommendation')",
            name="check_violation_severity",
        ),
        CheckConstraint(
            "confidence IS NULL OR confidence IN ('high', 'medium', 'low')",
            name="check_violation_confidence",
        ),
        Index("idx_violations_inspection_order", "inspection_id", "sort_order"),
    )

    @property
    def is_ai_detected(self) -> bool:
        return bool(self.ai_description)


class ViolationRegulationModel(Base):
    """Link between a violation and a regulation it breaches."""

    __tablename__ = "violation_regulations"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    violation_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("violations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    regulation_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("regulations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    relevance_score: Mapped[float | None] = mapped_column(Float)
    ai_explanation: Mapped[str | None] = mapped_column(Text)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("violation_id", "regulation_id", name="uq_violation_regulation"),
    )


class ReportModel(Base):
    """Generated report artifact for an inspection."""

    __tablename__ = "reports"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    inspection_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    pdf_storage_key: Mapped[str | None] = mapped_column(Text)
    docx_storage_key: Mapped[str | None] = mapped_column(Text)
    violation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    generated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def storage_key_for(self, fmt: str) -> str | None:
        if fmt == "pdf":
            return self.pdf_storage_key
        if fmt == "docx":
            return self.docx_storage_key
        return None


class JobModel(Base):
    """Background job row. The table is the source of truth for job state."""

    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    job_type: Mapped[str] = mapped_column(String(50), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    user_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    inspection_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("inspections.id", ondelete="CASCADE"), index=True
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed')", name="check_job_status"
        ),
        Index("idx_jobs_status_scheduled", "status", "scheduled_at"),
        # At most one in-flight analysis per inspection
        Index(
            "uq_jobs_active_analysis",
            "inspection_id",
            unique=True,
            postgresql_where=text(
                "job_type = 'analyze_inspection' AND status IN ('pending', 'running')"
            ),
            sqlite_where=text(
                "job_type = 'analyze_inspection' AND status IN ('pending', 'running')"
            ),
        ),
    )


class AIUsageModel(Base):
    """Tokens and cost of one AI provider call, for quota and cost reporting."""

    __tablename__ = "ai_usage"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    inspection_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("inspections.id", ondelete="SET NULL"), index=True
    )
    model: Mapped[str] = mapped_column(String(50), nullable=False)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    request_type: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_ai_usage_user_created", "user_id", "created_at"),)


class AuditLogModel(Base):
    """Audit trail of security-relevant actions."""

    __tablename__ = "audit_logs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), index=True)
    email: Mapped[str | None] = mapped_column(String(254))
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str | None] = mapped_column(String(50))
    resource_id: Mapped[str | None] = mapped_column(String(100))
    details: Mapped[dict | None] = mapped_column(JSON)
    ip_address: Mapped[str | None] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


def format_address(
    line1: str | None,
    line2: str | None,
    city: str | None,
    state: str | None,
    postal_code: str | None,
) -> str:
    """Join address parts as "line1, line2, city, state postal"."""
    parts = [p for p in (line1, line2) if p]
    locality = ", ".join(p for p in (city, " ".join(q for q in (state, postal_code) if q)) if p)
    if locality:
        parts.append(locality)
    return ", ".join(parts)
