"""Job handler registry.

A handler receives an open session and the job payload. It may return a
coroutine function to run once its transaction has committed, used for
side effects such as email that must not fire for rolled-back work.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.models import JobType

FollowUp = Callable[[], Awaitable[None]]
HandleFn = Callable[[AsyncSession, dict[str, Any]], Awaitable[FollowUp | None]]
FailureFn = Callable[[AsyncSession, dict[str, Any]], Awaitable[None]]


class PermanentError(Exception):
    """A job failure that retrying cannot fix."""


@dataclass(frozen=True)
class JobHandler:
    job_type: str
    handle: HandleFn
    # Runs in a fresh transaction once the job has failed for good
    on_failure: FailureFn | None = None


_registry: dict[str, JobHandler] = {}


def register(job_type: JobType | str, handle: HandleFn, on_failure: FailureFn | None = None) -> JobHandler:
    handler = JobHandler(job_type=JobType(job_type).value, handle=handle, on_failure=on_failure)
    _registry[handler.job_type] = handler
    return handler


def get_handler(job_type: str) -> JobHandler | None:
    return _registry.get(job_type)


def registered_types() -> list[str]:
    return sorted(_registry)
