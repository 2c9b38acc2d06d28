"""
Suggestion Generation Job.
Periodically produces a fresh batch of suggestions for every user with a
connected calendar.

Each user is one unit of work: fetch everything, compute purely, persist once.
Units run in batches under a semaphore and a per-user timeout, so one slow or
failing user never holds up the rest of the run. Re-running inside the same
window bucket writes nothing new.
"""

import asyncio
import time
from datetime import UTC, datetime, timedelta
from typing import Any

from catchup.config import Settings, settings
from catchup.db.helpers import DatabaseError
from catchup.db.pool import db_pool
from catchup.features.suggestions.domain import CollaboratorUnavailableError
from catchup.features.suggestions.pipeline.generation import (
    GenerationInput,
    SuggestionGenerator,
    batch_id_for,
    window_bucket,
)
from catchup.features.suggestions.ports import (
    AnchorEventProvider,
    AvailabilityProvider,
    ContactProvider,
    SuggestionStore,
    UserDirectory,
)
from catchup.infrastructure.observability.logging import get_logger, log_context

logger = get_logger(__name__)

JOB_NAME = "suggestion_generation"
BATCH_PAUSE_SECONDS = 1.0  # Pause between user batches


class SuggestionGenerationJobError(Exception):
    """Custom exception for suggestion generation job operations."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class SuggestionGenerationMetrics:
    """Metrics tracking for one generation run."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset all metrics for new job run."""
        self.start_time = datetime.now(UTC)
        self.users_processed = 0
        self.users_generated = 0
        self.users_skipped = 0
        self.users_timed_out = 0
        self.users_failed = 0
        self.suggestions_created = 0
        self.total_duration_seconds = 0.0
        self.errors: list[dict] = []

    def record_generated(self, user_id: str, suggestion_count: int, duration_ms: float):
        self.users_processed += 1
        self.users_generated += 1
        self.suggestions_created += suggestion_count

        logger.debug(
            "Suggestion batch generated",
            user_id=user_id,
            suggestion_count=suggestion_count,
            duration_ms=round(duration_ms, 2),
            job_run=JOB_NAME,
        )

    def record_skipped(self, user_id: str, reason: str):
        self.users_processed += 1
        self.users_skipped += 1

        logger.debug("Suggestion generation skipped", user_id=user_id, reason=reason, job_run=JOB_NAME)

    def record_timeout(self, user_id: str, timeout_seconds: float):
        self.users_processed += 1
        self.users_timed_out += 1
        self.errors.append(
            {
                "user_id": user_id,
                "error": f"Generation timed out after {timeout_seconds}s",
                "error_type": "timeout",
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

        logger.warning(
            "Suggestion generation timed out",
            user_id=user_id,
            timeout_seconds=timeout_seconds,
            job_run=JOB_NAME,
        )

    def record_failure(self, user_id: str, error: str, recoverable: bool = True):
        self.users_processed += 1
        self.users_failed += 1
        self.errors.append(
            {
                "user_id": user_id,
                "error": error,
                "recoverable": recoverable,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

        logger.error(
            "Suggestion generation failed",
            user_id=user_id,
            error=error,
            recoverable=recoverable,
            job_run=JOB_NAME,
        )

    @property
    def success_rate_percent(self) -> float:
        if self.users_processed == 0:
            return 0.0
        return round((self.users_generated + self.users_skipped) / self.users_processed * 100, 2)

    def finalize(self):
        self.total_duration_seconds = (datetime.now(UTC) - self.start_time).total_seconds()

    def to_dict(self) -> dict:
        """Convert metrics to dictionary for logging."""
        return {
            "job_run": JOB_NAME,
            "start_time": self.start_time.isoformat(),
            "total_duration_seconds": round(self.total_duration_seconds, 2),
            "users_processed": self.users_processed,
            "users_generated": self.users_generated,
            "users_skipped": self.users_skipped,
            "users_timed_out": self.users_timed_out,
            "users_failed": self.users_failed,
            "suggestions_created": self.suggestions_created,
            "success_rate_percent": self.success_rate_percent,
            "errors_count": len(self.errors),
        }


class SuggestionGenerationJob:
    """
    Background job that refreshes suggestions for every eligible user.

    Collaborators are injected as ports; the module-level instance wires the
    PostgreSQL repositories.
    """

    def __init__(
        self,
        store: SuggestionStore,
        contacts: ContactProvider,
        availability: AvailabilityProvider,
        anchors: AnchorEventProvider,
        users: UserDirectory,
        config: Settings | None = None,
        generator: SuggestionGenerator | None = None,
        clock=None,
        batch_pause_seconds: float = BATCH_PAUSE_SECONDS,
    ):
        self.store = store
        self.contacts = contacts
        self.availability = availability
        self.anchors = anchors
        self.users = users
        self.config = config or settings
        self.generator = generator or SuggestionGenerator(self.config.engine_config())
        self._clock = clock or (lambda: datetime.now(UTC))
        self.batch_pause_seconds = batch_pause_seconds

        self.is_running = False
        self.last_run_time: datetime | None = None
        self.job_metrics = SuggestionGenerationMetrics()
        self._validate_config()

    def _validate_config(self) -> None:
        """Validate job configuration."""
        if self.config.SUGGESTION_GENERATION_INTERVAL_MINUTES < 15:
            logger.warning(
                "Suggestion generation interval is very short",
                interval_minutes=self.config.SUGGESTION_GENERATION_INTERVAL_MINUTES,
            )

        if self.config.SUGGESTION_GENERATION_MAX_CONCURRENCY < 1:
            raise SuggestionGenerationJobError(
                "SUGGESTION_GENERATION_MAX_CONCURRENCY must be at least 1", operation="configure"
            )

    async def run_once(self) -> dict:
        """
        Run a single generation pass over all eligible users.

        Returns:
            Dict: Job execution metrics

        Raises:
            SuggestionGenerationJobError: If the user list cannot be loaded
        """
        if self.is_running:
            logger.warning("Suggestion generation job already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            self.job_metrics.reset()

            user_ids = await self._get_users()
            if not user_ids:
                logger.info("No users eligible for suggestion generation")
                self.job_metrics.finalize()
                self.last_run_time = datetime.now(UTC)
                return self.job_metrics.to_dict()

            logger.info(
                "Starting suggestion generation job",
                user_count=len(user_ids),
                lookahead_days=self.config.SUGGESTION_LOOKAHEAD_DAYS,
                max_concurrency=self.config.SUGGESTION_GENERATION_MAX_CONCURRENCY,
            )

            await self._process_users_in_batches(user_ids)

            self.job_metrics.finalize()
            self.last_run_time = datetime.now(UTC)

            metrics = self.job_metrics.to_dict()
            logger.info("Suggestion generation job completed", **metrics)
            return metrics

        except SuggestionGenerationJobError:
            raise
        except Exception as e:
            logger.error("Suggestion generation job failed", error=str(e), error_type=type(e).__name__)
            self.job_metrics.finalize()
            raise SuggestionGenerationJobError(
                f"Suggestion generation job failed: {e}", operation="run_once"
            ) from e

        finally:
            self.is_running = False

    async def _get_users(self) -> list[str]:
        try:
            return await self.users.list_users_needing_refresh()
        except DatabaseError as e:
            logger.error("Failed to list users for suggestion generation", error=str(e))
            raise SuggestionGenerationJobError(
                f"Failed to list users: {e}", operation="get_users"
            ) from e

    async def _process_users_in_batches(self, user_ids: list[str]) -> None:
        batch_size = max(self.config.SUGGESTION_GENERATION_BATCH_SIZE, 1)
        batches = [user_ids[i : i + batch_size] for i in range(0, len(user_ids), batch_size)]
        semaphore = asyncio.Semaphore(self.config.SUGGESTION_GENERATION_MAX_CONCURRENCY)

        for batch_num, batch_users in enumerate(batches, 1):
            logger.debug(
                "Processing batch",
                batch_number=batch_num,
                batch_size=len(batch_users),
                total_batches=len(batches),
            )

            tasks = [self._process_user_with_semaphore(semaphore, user_id) for user_id in batch_users]
            await asyncio.gather(*tasks, return_exceptions=True)

            if batch_num < len(batches) and self.batch_pause_seconds > 0:
                await asyncio.sleep(self.batch_pause_seconds)

    async def _process_user_with_semaphore(self, semaphore: asyncio.Semaphore, user_id: str) -> None:
        async with semaphore:
            await self._process_user(user_id)

    async def _process_user(self, user_id: str) -> None:
        timeout = self.config.SUGGESTION_GENERATION_USER_TIMEOUT_SECONDS
        start_time = time.time()

        try:
            result = await asyncio.wait_for(self.generate_for_user(user_id), timeout=timeout)

            if result["status"] == "generated":
                self.job_metrics.record_generated(
                    user_id, result["suggestion_count"], (time.time() - start_time) * 1000
                )
            else:
                self.job_metrics.record_skipped(user_id, result["reason"])

        except TimeoutError:
            self.job_metrics.record_timeout(user_id, timeout)

        except CollaboratorUnavailableError as e:
            self.job_metrics.record_failure(user_id, f"{e.collaborator}: {e}", e.recoverable)

        except DatabaseError as e:
            self.job_metrics.record_failure(user_id, str(e), e.recoverable)

        except Exception as e:
            self.job_metrics.record_failure(user_id, f"Unexpected error: {type(e).__name__}: {e}", False)

    async def generate_for_user(self, user_id: str) -> dict[str, Any]:
        """
        Generate and persist one batch for a user.

        Returns:
            {"status": "generated", "batch_id", "suggestion_count"} or
            {"status": "skipped", "batch_id", "reason"}

        Raises:
            CollaboratorUnavailableError: Contacts or anchor events could not be fetched
        """
        now = self._clock()
        bucket = window_bucket(now, self.config.SUGGESTION_WINDOW_BUCKET_HOURS)
        batch_id = batch_id_for(user_id, bucket)
        with log_context(user_id=user_id, batch_id=batch_id):
            if await self.store.batch_exists(user_id, bucket):
                return {"status": "skipped", "batch_id": batch_id, "reason": "batch_exists"}

            window_end = now + timedelta(days=self.config.SUGGESTION_LOOKAHEAD_DAYS)
            snapshot = await self._fetch("contacts", self.contacts.get_snapshot(user_id))
            anchors = await self._fetch(
                "anchor_events", self.anchors.get_anchor_events(user_id, now, window_end)
            )
            params, busy = await self._fetch_availability(user_id, now, window_end)
            outstanding = await self.store.get_outstanding(user_id)

            request = GenerationInput.for_lookahead(
                user_id,
                snapshot,
                now,
                self.config.SUGGESTION_LOOKAHEAD_DAYS,
                busy_intervals=tuple(busy) if busy is not None else None,
                params=params,
                anchors=tuple(anchors),
                outstanding_contact_ids=frozenset(
                    contact_id for suggestion in outstanding for contact_id in suggestion.contact_ids
                ),
                outstanding_count=len(outstanding),
            )
            suggestions = self.generator.generate(request, batch_id)

            if not await self.store.save_batch(user_id, bucket, batch_id, suggestions):
                return {"status": "skipped", "batch_id": batch_id, "reason": "concurrent_batch"}

            logger.info(
                "Suggestions generated for user",
                suggestion_count=len(suggestions),
                outstanding_count=len(outstanding),
            )
            return {"status": "generated", "batch_id": batch_id, "suggestion_count": len(suggestions)}

    @staticmethod
    async def _fetch(collaborator: str, awaitable):
        try:
            return await awaitable
        except CollaboratorUnavailableError:
            raise
        except DatabaseError as e:
            raise CollaboratorUnavailableError(str(e), collaborator, e.recoverable) from e

    async def _fetch_availability(self, user_id: str, window_start: datetime, window_end: datetime):
        """Availability failures degrade to no busy data (zero slots) rather than skipping the user."""
        try:
            params = await self.availability.get_availability_params(user_id)
            busy = await self.availability.get_busy_intervals(user_id, window_start, window_end)
            return params, busy
        except (CollaboratorUnavailableError, DatabaseError) as e:
            logger.warning(
                "Availability unavailable, generating without free slots",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None, None

    def get_job_status(self) -> dict:
        return {
            "job_name": JOB_NAME,
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_minutes": self.config.SUGGESTION_GENERATION_INTERVAL_MINUTES,
            "batch_size": self.config.SUGGESTION_GENERATION_BATCH_SIZE,
            "max_concurrency": self.config.SUGGESTION_GENERATION_MAX_CONCURRENCY,
            "user_timeout_seconds": self.config.SUGGESTION_GENERATION_USER_TIMEOUT_SECONDS,
            "last_run_metrics": self.job_metrics.to_dict() if self.last_run_time else None,
        }

    def health_check(self) -> dict:
        """
        Health check for the generation job.

        The job is unhealthy once it has not completed a run in twice its interval.
        """
        now = datetime.now(UTC)
        interval = self.config.SUGGESTION_GENERATION_INTERVAL_MINUTES
        overdue_threshold = timedelta(minutes=interval * 2)
        is_overdue = self.last_run_time is not None and (now - self.last_run_time) > overdue_threshold

        health_status = {
            "healthy": not is_overdue,
            "service": "suggestion_generation_job",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "is_overdue": is_overdue,
            "recent_success_rate": self.job_metrics.success_rate_percent if self.last_run_time else None,
            "configuration": {
                "interval_minutes": interval,
                "batch_size": self.config.SUGGESTION_GENERATION_BATCH_SIZE,
                "max_concurrency": self.config.SUGGESTION_GENERATION_MAX_CONCURRENCY,
            },
        }

        if is_overdue:
            health_status["warning"] = (
                f"Job overdue by {(now - self.last_run_time).total_seconds() / 60:.1f} minutes"
            )

        return health_status


def build_default_job() -> SuggestionGenerationJob:
    """Wire the job to the PostgreSQL repositories."""
    from catchup.features.suggestions.repository import (
        calendar_repository,
        contact_repository,
        suggestion_repository,
        user_repository,
    )

    return SuggestionGenerationJob(
        store=suggestion_repository,
        contacts=contact_repository,
        availability=calendar_repository,
        anchors=calendar_repository,
        users=user_repository,
    )


async def run_suggestion_generation_once() -> None:
    """Single pass, for cron-style invocation."""
    await db_pool.initialize()
    try:
        metrics = await build_default_job().run_once()
        logger.info("Suggestion generation run finished", **metrics)
    finally:
        await db_pool.close()


async def start_suggestion_generation_scheduler() -> None:
    """Run the generation job forever at the configured interval."""
    interval_minutes = settings.SUGGESTION_GENERATION_INTERVAL_MINUTES
    logger.info("Starting suggestion generation scheduler", interval_minutes=interval_minutes)

    await db_pool.initialize()
    job = build_default_job()

    try:
        while True:
            try:
                metrics = await job.run_once()
                if not metrics.get("skipped", False):
                    logger.info("Suggestion generation cycle completed", **metrics)

                await asyncio.sleep(interval_minutes * 60)

            except SuggestionGenerationJobError as e:
                logger.error("Error in suggestion generation scheduler", error=str(e), operation=e.operation)
                # Avoid a tight error loop
                await asyncio.sleep(60)
    finally:
        await db_pool.close()
