"""Job enqueueing.

A job is first written to the ``jobs`` table inside the caller's
transaction. Once that transaction commits, ``dispatch`` hands the row id to
arq. If Redis is unreachable the row stays pending and the worker's sweep
dispatches it later.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog
from arq.connections import ArqRedis
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.config import get_config
from lukaut.core.queue import get_queue
from lukaut.db.models import JobModel, utcnow
from lukaut.errors import conflict
from lukaut.models import PRIORITY_NORMAL, JobStatus, JobType

logger = structlog.get_logger(__name__)

ACTIVE_STATUSES = (JobStatus.PENDING.value, JobStatus.RUNNING.value)
ANALYSIS_IN_PROGRESS_MESSAGE = "Analysis is already in progress"

_pool: ArqRedis | None = None


async def enqueue(
    session: AsyncSession,
    job_type: str | JobType,
    payload: dict,
    user_id: UUID | None = None,
    inspection_id: UUID | None = None,
    priority: int = PRIORITY_NORMAL,
    max_attempts: int | None = None,
    scheduled_at: datetime | None = None,
) -> JobModel:
    """Insert a pending job row.

    Raises:
        LukautError(ECONFLICT): An analysis job for the inspection is already
            pending or running (enforced by a partial unique index)
    """
    job_type = JobType(job_type).value
    job = JobModel(
        job_type=job_type,
        payload=payload,
        status=JobStatus.PENDING.value,
        priority=priority,
        max_attempts=max_attempts or get_config().worker.max_attempts,
        user_id=user_id,
        inspection_id=inspection_id,
        scheduled_at=scheduled_at or utcnow(),
    )
    session.add(job)
    try:
        await session.flush()
    except IntegrityError as exc:
        if job_type == JobType.ANALYZE_INSPECTION.value:
            raise conflict(ANALYSIS_IN_PROGRESS_MESSAGE, op="jobs.enqueue") from exc
        raise

    logger.info("job_enqueued", job_id=str(job.id), job_type=job_type, priority=priority)
    return job


async def has_active_analysis(session: AsyncSession, inspection_id: UUID) -> bool:
    """True if an analysis job for the inspection is pending or running."""
    count = await session.scalar(
        select(func.count())
        .select_from(JobModel)
        .where(
            JobModel.inspection_id == inspection_id,
            JobModel.job_type == JobType.ANALYZE_INSPECTION.value,
            JobModel.status.in_(ACTIVE_STATUSES),
        )
    )
    return bool(count)


def arq_job_id(job_id: UUID | str, attempts: int = 0) -> str:
    """arq deduplicates on job id, so each attempt gets its own."""
    return f"{job_id}:{attempts}"


async def _get_pool() -> ArqRedis:
    global _pool
    if _pool is None:
        _pool = await get_queue()
    return _pool


async def dispatch(job_id: UUID | str, attempts: int = 0, defer_seconds: int | None = None) -> bool:
    """Push a committed job row to the arq queue.

    Returns False (after logging) when Redis is unavailable.
    """
    try:
        pool = await _get_pool()
        await pool.enqueue_job(
            "process_job",
            str(job_id),
            _job_id=arq_job_id(job_id, attempts),
            _defer_by=defer_seconds,
        )
    except (RedisError, OSError) as exc:
        logger.warning("job_dispatch_failed", job_id=str(job_id), error=str(exc))
        return False
    return True


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.aclose()
        _pool = None
