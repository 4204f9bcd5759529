from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from app.delivery.state import TimerHandle

logger = structlog.get_logger(__name__)

Job = Callable[[], Awaitable[Any]]
Scheduler = Callable[[float, Job], TimerHandle]

_running_jobs: set[asyncio.Task[Any]] = set()


def _log_job_failure(task: asyncio.Task[Any]) -> None:
    _running_jobs.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("delivery_timer_job_failed", exc_info=error)


def _spawn(job: Job) -> None:
    task = asyncio.ensure_future(job())
    _running_jobs.add(task)
    task.add_done_callback(_log_job_failure)


def schedule_later(delay: float, job: Job) -> asyncio.TimerHandle:
    """Run ``job`` on the running loop after ``delay`` seconds."""
    loop = asyncio.get_running_loop()
    return loop.call_later(max(0.0, delay), _spawn, job)
