"""AI usage accounting.

One ``ai_usage`` row per provider call. Summaries feed the admin views.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.accounts.quota import month_start
from lukaut.ai.provider import UsageInfo
from lukaut.db.models import AIUsageModel, UserModel

logger = structlog.get_logger(__name__)

IMAGE_ANALYSIS = "image_analysis"
REGULATION_MATCH = "regulation_match"


@dataclass(slots=True)
class UsageTotals:
    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_cents: int = 0

    @property
    def cost_dollars(self) -> str:
        return f"${self.cost_cents / 100:.2f}"


@dataclass(slots=True)
class UserUsage:
    user_id: UUID
    email: str
    totals: UsageTotals


async def record_usage(
    session: AsyncSession,
    user_id: UUID,
    usage: UsageInfo,
    request_type: str,
    inspection_id: UUID | None = None,
) -> AIUsageModel:
    row = AIUsageModel(
        user_id=user_id,
        inspection_id=inspection_id,
        model=usage.model[:50],
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        cost_cents=usage.cost_cents,
        request_type=request_type,
    )
    session.add(row)
    await session.flush()
    logger.debug(
        "ai_usage_recorded",
        user_id=str(user_id),
        request_type=request_type,
        cost_cents=usage.cost_cents,
    )
    return row


def _totals_columns():
    return (
        func.count(AIUsageModel.id),
        func.coalesce(func.sum(AIUsageModel.input_tokens), 0),
        func.coalesce(func.sum(AIUsageModel.output_tokens), 0),
        func.coalesce(func.sum(AIUsageModel.cost_cents), 0),
    )


async def monthly_usage(session: AsyncSession, user_id: UUID, now: datetime | None = None) -> UsageTotals:
    """The user's AI usage since the start of the current month."""
    row = (
        await session.execute(
            select(*_totals_columns()).where(
                AIUsageModel.user_id == user_id,
                AIUsageModel.created_at >= month_start(now),
            )
        )
    ).one()
    return UsageTotals(*(int(value) for value in row))


async def platform_usage(session: AsyncSession, since: datetime | None = None) -> UsageTotals:
    stmt = select(*_totals_columns())
    if since is not None:
        stmt = stmt.where(AIUsageModel.created_at >= since)
    row = (await session.execute(stmt)).one()
    return UsageTotals(*(int(value) for value in row))


async def top_users_by_cost(
    session: AsyncSession, since: datetime | None = None, limit: int = 10
) -> list[UserUsage]:
    cost = func.coalesce(func.sum(AIUsageModel.cost_cents), 0)
    stmt = (
        select(UserModel.id, UserModel.email, *_totals_columns())
        .select_from(AIUsageModel)
        .join(UserModel, UserModel.id == AIUsageModel.user_id)
        .group_by(UserModel.id, UserModel.email)
        .order_by(cost.desc(), UserModel.email)
        .limit(limit)
    )
    if since is not None:
        stmt = stmt.where(AIUsageModel.created_at >= since)
    rows = await session.execute(stmt)
    return [
        UserUsage(user_id=user_id, email=email, totals=UsageTotals(*(int(v) for v in totals)))
        for user_id, email, *totals in rows.all()
    ]
