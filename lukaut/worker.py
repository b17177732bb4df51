"""arq worker entry point.

Run with ``arq lukaut.worker.WorkerSettings`` or ``lukaut worker``.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from arq.cron import cron

from lukaut.config import get_config
from lukaut.core.logging import configure_logging
from lukaut.core.queue import get_redis_settings
from lukaut.db.connection import close_db
from lukaut.jobs import analyze, generate_report  # noqa: F401  (registers handlers)
from lukaut.jobs.handlers import registered_types
from lukaut.jobs.queue import close_pool
from lukaut.jobs.runner import run_job, sweep

logger = structlog.get_logger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """Initialize resources when worker starts."""
    configure_logging("worker")
    logger.info("worker_started", job_types=registered_types())


async def shutdown(ctx: dict[str, Any]) -> None:
    """Cleanup resources when worker stops."""
    await close_pool()
    await close_db()
    logger.info("worker_stopped")


async def process_job(ctx: dict[str, Any], job_id: str) -> str:
    """Run one row from the jobs table."""
    return await run_job(UUID(job_id))


async def sweep_jobs(ctx: dict[str, Any]) -> dict[str, Any]:
    """Requeue stale jobs and dispatch pending ones whose dispatch was lost."""
    return await sweep()


_worker_config = get_config().worker


class WorkerSettings:
    functions = [process_job]
    cron_jobs = [cron(sweep_jobs, second=0, run_at_startup=True)]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()
    max_jobs = _worker_config.concurrency
    # Handlers enforce their own timeout; leave headroom for bookkeeping
    job_timeout = _worker_config.job_timeout_seconds + 60
