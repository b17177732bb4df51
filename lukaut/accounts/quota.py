"""Monthly usage limits for accounts without an active subscription."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.db.models import JobModel, UserModel, utcnow
from lukaut.errors import payment_required
from lukaut.models import JobStatus, JobType, SubscriptionTier

# None means unlimited
TIER_LIMITS: dict[str, dict[str, int | None]] = {
    SubscriptionTier.FREE.value: {
        JobType.ANALYZE_INSPECTION.value: 3,
        JobType.GENERATE_REPORT.value: 2,
    },
    SubscriptionTier.STARTER.value: {
        JobType.ANALYZE_INSPECTION.value: None,
        JobType.GENERATE_REPORT.value: None,
    },
    SubscriptionTier.PROFESSIONAL.value: {
        JobType.ANALYZE_INSPECTION.value: None,
        JobType.GENERATE_REPORT.value: None,
    },
}

_LIMIT_MESSAGES = {
    JobType.ANALYZE_INSPECTION.value: (
        "Monthly analysis limit reached. Upgrade your plan to analyze more inspections."
    ),
    JobType.GENERATE_REPORT.value: (
        "Monthly report limit reached. Upgrade your plan to generate more reports."
    ),
}


def month_start(now: datetime | None = None) -> datetime:
    now = now or utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def limit_for(user: UserModel, job_type: str) -> int | None:
    return TIER_LIMITS.get(user.effective_tier, TIER_LIMITS["free"]).get(job_type)


async def usage_this_month(session: AsyncSession, user_id: UUID, job_type: str) -> int:
    """Count jobs of ``job_type`` the user created this month that did not fail."""
    stmt = (
        select(func.count())
        .select_from(JobModel)
        .where(
            JobModel.user_id == user_id,
            JobModel.job_type == job_type,
            JobModel.status != JobStatus.FAILED.value,
            JobModel.created_at >= month_start(),
        )
    )
    return await session.scalar(stmt) or 0


async def check_quota(session: AsyncSession, user: UserModel, job_type: str) -> None:
    """Raise EPAYMENT when the user has used up this month's allowance."""
    limit = limit_for(user, job_type)
    if limit is None:
        return
    used = await usage_this_month(session, user.id, job_type)
    if used >= limit:
        raise payment_required(_LIMIT_MESSAGES[job_type], op="quota.check")


async def usage_summary(session: AsyncSession, user: UserModel) -> dict[str, dict[str, int | None]]:
    """Used/limit pairs per job type, for the billing page."""
    summary = {}
    for job_type in (JobType.ANALYZE_INSPECTION.value, JobType.GENERATE_REPORT.value):
        summary[job_type] = {
            "used": await usage_this_month(session, user.id, job_type),
            "limit": limit_for(user, job_type),
        }
    return summary
