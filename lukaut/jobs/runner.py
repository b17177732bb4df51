"""Job execution: claiming, running, retrying and recovering jobs.

Every arq delivery carries only a job row id. The row is claimed with a
conditional UPDATE, so duplicate deliveries (a retry racing the sweep, for
example) run the handler at most once per attempt.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.config import WorkerConfig, get_config
from lukaut.db.connection import get_session
from lukaut.db.models import JobModel, utcnow
from lukaut.jobs.handlers import PermanentError, get_handler
from lukaut.jobs.queue import dispatch
from lukaut.models import JobStatus

logger = structlog.get_logger(__name__)

MAX_ERROR_LENGTH = 2000
DUE_BATCH_SIZE = 100


async def claim_job(session: AsyncSession, job_id: UUID) -> JobModel | None:
    """Move a pending job to running. Returns None if someone else has it."""
    result = await session.execute(
        update(JobModel)
        .where(JobModel.id == job_id, JobModel.status == JobStatus.PENDING.value)
        .values(
            status=JobStatus.RUNNING.value,
            attempts=JobModel.attempts + 1,
            started_at=utcnow(),
        )
    )
    if result.rowcount == 0:
        return None
    return await session.get(JobModel, job_id, populate_existing=True)


async def complete_job(session: AsyncSession, job_id: UUID) -> None:
    await session.execute(
        update(JobModel)
        .where(JobModel.id == job_id)
        .values(status=JobStatus.COMPLETED.value, completed_at=utcnow(), error_message=None)
    )


async def fail_job(session: AsyncSession, job_id: UUID, error: str) -> None:
    await session.execute(
        update(JobModel)
        .where(JobModel.id == job_id)
        .values(
            status=JobStatus.FAILED.value,
            completed_at=utcnow(),
            error_message=error[:MAX_ERROR_LENGTH],
        )
    )


async def reschedule_job(session: AsyncSession, job_id: UUID, error: str, delay_seconds: int) -> None:
    await session.execute(
        update(JobModel)
        .where(JobModel.id == job_id)
        .values(
            status=JobStatus.PENDING.value,
            scheduled_at=utcnow() + timedelta(seconds=delay_seconds),
            error_message=error[:MAX_ERROR_LENGTH],
        )
    )


async def run_job(job_id: UUID, worker: WorkerConfig | None = None) -> str:
    """Claim and execute one job. Returns the resulting job status, or "skipped"."""
    worker = worker or get_config().worker
    log = logger.bind(job_id=str(job_id))

    async with get_session() as session:
        job = await claim_job(session, job_id)
        if job is None:
            log.info("job_skipped")
            return "skipped"
        job_type, payload = job.job_type, dict(job.payload or {})
        attempts, max_attempts = job.attempts, job.max_attempts

    log = log.bind(job_type=job_type, attempt=attempts)
    handler = get_handler(job_type)
    log.info("job_started")

    try:
        if handler is None:
            raise PermanentError(f"no handler registered for job type {job_type!r}")
        async with get_session() as session:
            follow_up = await asyncio.wait_for(
                handler.handle(session, payload), timeout=worker.job_timeout_seconds
            )
    except Exception as exc:
        error = str(exc) or type(exc).__name__
        if isinstance(exc, asyncio.TimeoutError):
            error = f"timed out after {worker.job_timeout_seconds}s"
        permanent = isinstance(exc, PermanentError) or attempts >= max_attempts

        if permanent:
            async with get_session() as session:
                await fail_job(session, job_id, error)
                if handler is not None and handler.on_failure is not None:
                    await handler.on_failure(session, payload)
            log.error("job_failed", error=error, permanent=isinstance(exc, PermanentError))
            return JobStatus.FAILED.value

        async with get_session() as session:
            await reschedule_job(session, job_id, error, worker.retry_delay_seconds)
        log.warning("job_retry_scheduled", error=error, delay_seconds=worker.retry_delay_seconds)
        await dispatch(job_id, attempts, defer_seconds=worker.retry_delay_seconds)
        return JobStatus.PENDING.value

    async with get_session() as session:
        await complete_job(session, job_id)
    log.info("job_completed")

    if follow_up is not None:
        try:
            await follow_up()
        except Exception as exc:
            log.error("job_follow_up_failed", error=str(exc))
    return JobStatus.COMPLETED.value


async def recover_stale_jobs(session: AsyncSession, threshold_seconds: int) -> int:
    """Return running jobs abandoned by a dead worker to pending, or fail them when out of attempts."""
    cutoff = utcnow() - timedelta(seconds=threshold_seconds)
    stale = (
        JobModel.status == JobStatus.RUNNING.value,
        JobModel.started_at < cutoff,
    )
    failed = await session.execute(
        update(JobModel)
        .where(*stale, JobModel.attempts >= JobModel.max_attempts)
        .values(
            status=JobStatus.FAILED.value,
            completed_at=utcnow(),
            error_message="worker stopped responding",
        )
    )
    requeued = await session.execute(
        update(JobModel)
        .where(*stale)
        .values(status=JobStatus.PENDING.value, scheduled_at=utcnow())
    )
    if failed.rowcount or requeued.rowcount:
        logger.warning("stale_jobs_recovered", requeued=requeued.rowcount, failed=failed.rowcount)
    return requeued.rowcount


async def due_jobs(session: AsyncSession, limit: int = DUE_BATCH_SIZE) -> list[tuple[UUID, int]]:
    """Pending jobs whose scheduled time has passed, highest priority first."""
    rows = await session.execute(
        select(JobModel.id, JobModel.attempts)
        .where(JobModel.status == JobStatus.PENDING.value, JobModel.scheduled_at <= utcnow())
        .order_by(JobModel.priority.desc(), JobModel.scheduled_at)
        .limit(limit)
    )
    return [(job_id, attempts) for job_id, attempts in rows.all()]


async def sweep(worker: WorkerConfig | None = None) -> dict[str, Any]:
    """Recover stale jobs and (re)dispatch everything that is due."""
    worker = worker or get_config().worker
    async with get_session() as session:
        recovered = await recover_stale_jobs(session, worker.stale_threshold_seconds)
        due = await due_jobs(session)

    dispatched = 0
    for job_id, attempts in due:
        if await dispatch(job_id, attempts):
            dispatched += 1
    if due:
        logger.info("jobs_swept", due=len(due), dispatched=dispatched, recovered=recovered)
    return {"recovered": recovered, "due": len(due), "dispatched": dispatched}
