"""
Background worker entrypoint (``catchup-worker``).

``catchup-worker`` runs the generation scheduler forever;
``catchup-worker suggestion_generation_once`` runs one pass for cron. The
job may also come from the WORKER_JOB environment variable.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from catchup.config import settings
from catchup.features.suggestions.jobs import (
    run_suggestion_generation_once,
    start_suggestion_generation_scheduler,
)
from catchup.infrastructure.observability.logging import get_logger, setup_logging

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]

DEFAULT_JOB = "suggestion_generation"

JOB_REGISTRY: dict[str, JobCoroutine] = {
    DEFAULT_JOB: start_suggestion_generation_scheduler,
    "suggestion_generation_once": run_suggestion_generation_once,
}


def _resolve_job_name() -> str:
    """CLI argument first, then WORKER_JOB, then the scheduler."""
    raw = sys.argv[1] if len(sys.argv) > 1 else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return raw.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        raise ValueError(f"Unknown worker job '{name}'. Available jobs: {', '.join(sorted(JOB_REGISTRY))}")

    logger.info("Starting background worker", job=name, environment=settings.environment)
    await job()


def main() -> None:
    setup_logging(settings.log_level)
    try:
        asyncio.run(run_worker(_resolve_job_name()))
    except KeyboardInterrupt:
        logger.info("Background worker stopped")


if __name__ == "__main__":
    main()
