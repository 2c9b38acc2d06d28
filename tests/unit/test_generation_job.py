import asyncio
from datetime import timedelta

import pytest

from catchup.config import Settings
from catchup.db.helpers import DatabaseError
from catchup.features.suggestions.domain import (
    AvailabilityParams,
    CollaboratorUnavailableError,
    ContactSnapshot,
    SuggestionStatus,
)
from catchup.features.suggestions.jobs import SuggestionGenerationJob, SuggestionGenerationJobError
from catchup.features.suggestions.pipeline.generation import SuggestionGenerator


def _build_job(store, fakes, now, make_contact, user_ids=("user-123",), config=None, **overrides):
    snapshots = {
        user_id: ContactSnapshot(
            user_id=user_id,
            contacts=(make_contact("alice"), make_contact("bob", days_ago=90), make_contact("cara", days_ago=2)),
        )
        for user_id in user_ids
    }
    collaborators = {
        "contacts": fakes.ContactProvider(snapshots),
        "availability": fakes.AvailabilityProvider(busy=[], params=AvailabilityParams()),
        "anchors": fakes.AnchorProvider(),
        "users": fakes.UserDirectory(user_ids),
    }
    collaborators.update(overrides)
    return SuggestionGenerationJob(
        store=store,
        config=config or Settings(),
        clock=lambda: now,
        batch_pause_seconds=0,
        **collaborators,
    )


@pytest.mark.asyncio
async def test_run_once_generates_and_rerun_is_idempotent(store, fakes, now, make_contact):
    job = _build_job(store, fakes, now, make_contact)

    first = await job.run_once()
    created = dict(store.suggestions)
    second = await job.run_once()

    assert first["users_generated"] == 1
    assert first["suggestions_created"] == 2
    assert second["users_generated"] == 0
    assert second["users_skipped"] == 1
    assert store.suggestions == created
    assert {s.contact_ids for s in created.values()} == {("alice",), ("bob",)}
    assert all(s.status is SuggestionStatus.PENDING for s in created.values())
    assert len({s.generation_batch_id for s in created.values()}) == 1


@pytest.mark.asyncio
async def test_concurrent_runs_for_same_window_persist_once(store, fakes, now, make_contact):
    job = _build_job(store, fakes, now, make_contact)

    results = await asyncio.gather(job.generate_for_user("user-123"), job.generate_for_user("user-123"))

    statuses = sorted(r["status"] for r in results)
    assert statuses == ["generated", "skipped"]
    assert results[0]["batch_id"] == results[1]["batch_id"]
    assert len(store.batches) == 1
    assert len(store.suggestions) == 2


@pytest.mark.asyncio
async def test_next_window_builds_on_outstanding_suggestions(store, fakes, now, make_contact):
    job = _build_job(store, fakes, now, make_contact)
    await job.generate_for_user("user-123")

    job._clock = lambda: now + timedelta(days=1)
    result = await job.generate_for_user("user-123")

    assert result == {"status": "generated", "batch_id": result["batch_id"], "suggestion_count": 0}
    assert len(store.batches) == 2


@pytest.mark.asyncio
async def test_slow_user_times_out_without_blocking_others(store, fakes, now, make_contact):
    availability = fakes.AvailabilityProvider(busy=[], params=AvailabilityParams(), delay=1.0)
    availability.delay_for = {"slow-user"}
    job = _build_job(
        store,
        fakes,
        now,
        make_contact,
        user_ids=("slow-user", "user-123", "user-456"),
        config=Settings(SUGGESTION_GENERATION_USER_TIMEOUT_SECONDS=0.05, SUGGESTION_GENERATION_BATCH_SIZE=2),
        availability=availability,
    )

    metrics = await job.run_once()

    assert metrics["users_processed"] == 3
    assert metrics["users_timed_out"] == 1
    assert metrics["users_generated"] == 2
    assert {user_id for user_id, _ in store.batches} == {"user-123", "user-456"}


@pytest.mark.asyncio
async def test_contact_failure_is_recorded_per_user(store, fakes, now, make_contact):
    job = _build_job(
        store,
        fakes,
        now,
        make_contact,
        contacts=fakes.ContactProvider(error=DatabaseError("connection reset", operation="fetch_all")),
    )

    metrics = await job.run_once()

    assert metrics["users_failed"] == 1
    assert job.job_metrics.errors[0]["error"].startswith("contacts:")
    assert store.batches == {}


@pytest.mark.asyncio
async def test_contact_failure_surfaces_from_generate_for_user(store, fakes, now, make_contact):
    job = _build_job(
        store,
        fakes,
        now,
        make_contact,
        contacts=fakes.ContactProvider(error=DatabaseError("connection reset")),
    )

    with pytest.raises(CollaboratorUnavailableError) as exc:
        await job.generate_for_user("user-123")

    assert exc.value.collaborator == "contacts"


@pytest.mark.asyncio
async def test_availability_failure_degrades_to_no_slots(store, fakes, now, make_contact):
    job = _build_job(
        store,
        fakes,
        now,
        make_contact,
        availability=fakes.AvailabilityProvider(error=CollaboratorUnavailableError("calendar down", "calendar")),
    )

    result = await job.generate_for_user("user-123")

    assert result["status"] == "generated"
    assert result["suggestion_count"] == 0
    assert len(store.batches) == 1


@pytest.mark.asyncio
async def test_user_list_failure_raises_job_error(store, fakes, now, make_contact):
    class BrokenDirectory:
        async def list_users_needing_refresh(self):
            raise DatabaseError("users table unavailable", operation="fetch_all")

    job = _build_job(store, fakes, now, make_contact, users=BrokenDirectory())

    with pytest.raises(SuggestionGenerationJobError) as exc:
        await job.run_once()

    assert exc.value.operation == "get_users"
    assert job.is_running is False


@pytest.mark.asyncio
async def test_run_once_skips_when_already_running(store, fakes, now, make_contact):
    job = _build_job(store, fakes, now, make_contact)
    job.is_running = True

    result = await job.run_once()

    assert result == {"skipped": True, "reason": "already_running"}
    assert store.save_calls == 0


@pytest.mark.asyncio
async def test_status_and_health_after_run(store, fakes, now, make_contact):
    job = _build_job(store, fakes, now, make_contact)

    assert job.get_job_status()["last_run_metrics"] is None
    await job.run_once()

    status = job.get_job_status()
    health = job.health_check()
    assert status["job_name"] == "suggestion_generation"
    assert status["last_run_metrics"]["users_generated"] == 1
    assert health["healthy"] is True
    assert health["recent_success_rate"] == 100.0


def test_invalid_concurrency_is_rejected(store, fakes, now, make_contact):
    with pytest.raises(SuggestionGenerationJobError):
        _build_job(store, fakes, now, make_contact, config=Settings(SUGGESTION_GENERATION_MAX_CONCURRENCY=0))


class RecordingGenerator(SuggestionGenerator):
    def __init__(self):
        super().__init__()
        self.requests = []

    def generate(self, request, batch_id):
        self.requests.append(request)
        return super().generate(request, batch_id)


@pytest.mark.asyncio
async def test_generation_window_spans_the_configured_lookahead(store, fakes, now, make_contact):
    generator = RecordingGenerator()
    config = Settings(SUGGESTION_LOOKAHEAD_DAYS=7)
    job = _build_job(store, fakes, now, make_contact, config=config, generator=generator)

    await job.generate_for_user("user-123")

    (request,) = generator.requests
    assert request.window_start == now
    assert request.window_end == now + timedelta(days=7)
    assert request.outstanding_count == 0
