import asyncio
import dataclasses
from datetime import UTC, datetime, timedelta

import pytest

from catchup.auth.verify import auth_dependency
from catchup.features.suggestions.domain import (
    CollaboratorUnavailableError,
    Contact,
    ContactSnapshot,
    FrequencyPreference,
    Suggestion,
    SuggestionStatus,
    SuggestionType,
    TimeSlot,
    TriggerType,
)
from catchup.features.suggestions.lifecycle import is_actionable
from catchup.features.suggestions.ports import StatusTransition

# Monday
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_contact():
    def _make(contact_id: str, days_ago: float | None = 60, **overrides) -> Contact:
        fields = {
            "id": contact_id,
            "display_name": contact_id.title(),
            "frequency_preference": FrequencyPreference.MONTHLY,
            "last_contact_date": NOW - timedelta(days=days_ago) if days_ago is not None else None,
        }
        fields.update(overrides)
        return Contact(**fields)

    return _make


@pytest.fixture
def make_suggestion():
    def _make(suggestion_id: str = "s-1", user_id: str = "user-123", **overrides) -> Suggestion:
        fields = {
            "id": suggestion_id,
            "user_id": user_id,
            "type": SuggestionType.INDIVIDUAL,
            "contact_ids": ("alice",),
            "slot": TimeSlot(start=NOW + timedelta(days=1), end=NOW + timedelta(days=1, hours=1)),
            "trigger_type": TriggerType.TIMEBOUND,
            "reasoning": "Last connected 60 days ago (monthly cadence)",
            "priority": 80.0,
            "generation_batch_id": "batch-1",
            "created_at": NOW - timedelta(days=1),
            "updated_at": NOW - timedelta(days=1),
        }
        fields.update(overrides)
        return Suggestion(**fields)

    return _make


class InMemorySuggestionStore:
    """SuggestionStore fake with the same compare-and-set semantics as the SQL store."""

    def __init__(self, yield_after_read: bool = False):
        self.suggestions: dict[str, Suggestion] = {}
        self.batches: dict[tuple[str, int], str] = {}
        self.interaction_logs = []
        self.recently_met: dict[str, datetime] = {}
        self.yield_after_read = yield_after_read
        self.save_calls = 0

    def add(self, suggestion: Suggestion) -> Suggestion:
        self.suggestions[suggestion.id] = suggestion
        return suggestion

    async def batch_exists(self, user_id, window_bucket):
        return (user_id, window_bucket) in self.batches

    async def save_batch(self, user_id, window_bucket, batch_id, suggestions):
        self.save_calls += 1
        if (user_id, window_bucket) in self.batches:
            return False
        self.batches[(user_id, window_bucket)] = batch_id
        for suggestion in suggestions:
            self.suggestions[suggestion.id] = suggestion
        return True

    async def get_outstanding(self, user_id):
        return [
            dataclasses.replace(s)
            for s in self.suggestions.values()
            if s.user_id == user_id and s.status in (SuggestionStatus.PENDING, SuggestionStatus.SNOOZED)
        ]

    async def get(self, user_id, suggestion_id):
        suggestion = self.suggestions.get(suggestion_id)
        if suggestion is None or suggestion.user_id != user_id:
            return None
        snapshot = dataclasses.replace(suggestion)
        if self.yield_after_read:
            # Let a concurrent caller read the same state before either writes
            await asyncio.sleep(0)
        return snapshot

    async def list_actionable(self, user_id, now):
        return sorted(
            (
                dataclasses.replace(s)
                for s in self.suggestions.values()
                if s.user_id == user_id and is_actionable(s, now)
            ),
            key=lambda s: (-s.priority, s.slot.start, s.id),
        )

    async def apply_transition(self, transition: StatusTransition):
        stored = self.suggestions.get(transition.suggestion_id)
        if stored is None or stored.user_id != transition.user_id:
            return None
        if stored.status is not transition.expected_status:
            return None

        stored.status = transition.new_status
        stored.dismissal_reason = transition.dismissal_reason or stored.dismissal_reason
        stored.snoozed_until = transition.snoozed_until
        stored.updated_at = transition.at
        self.interaction_logs.extend(transition.interaction_logs)
        for contact_id in transition.recently_met_contact_ids:
            self.recently_met[contact_id] = transition.at
        return dataclasses.replace(stored)


class FakeContactProvider:
    def __init__(self, snapshots: dict[str, ContactSnapshot] | None = None, error: Exception | None = None):
        self.snapshots = snapshots or {}
        self.error = error

    async def get_snapshot(self, user_id):
        if self.error:
            raise self.error
        return self.snapshots.get(user_id, ContactSnapshot(user_id=user_id, contacts=()))

    async def get_contacts(self, user_id, contact_ids):
        snapshot = self.snapshots.get(user_id, ContactSnapshot(user_id=user_id, contacts=()))
        return [c for c in snapshot.contacts if c.id in contact_ids]


class FakeAvailabilityProvider:
    def __init__(self, busy=None, params=None, error: Exception | None = None, delay: float = 0.0):
        self.busy = busy
        self.params = params
        self.error = error
        self.delay = delay
        self.delay_for: set[str] = set()

    async def get_busy_intervals(self, user_id, window_start, window_end):
        if user_id in self.delay_for:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.busy.get(user_id) if isinstance(self.busy, dict) else self.busy

    async def get_availability_params(self, user_id):
        if self.error:
            raise self.error
        return self.params


class FakeAnchorProvider:
    def __init__(self, anchors=None, error: Exception | None = None):
        self.anchors = anchors or []
        self.error = error

    async def get_anchor_events(self, user_id, window_start, window_end):
        if self.error:
            raise self.error
        return list(self.anchors)


class FakeUserDirectory:
    def __init__(self, user_ids):
        self.user_ids = list(user_ids)

    async def list_users_needing_refresh(self):
        return list(self.user_ids)


class RecordingFeedPublisher:
    def __init__(self, fail: bool = False):
        self.published: list[Suggestion] = []
        self.fail = fail

    async def publish(self, suggestion):
        if self.fail:
            raise CollaboratorUnavailableError("feed down", "calendar_feed")
        self.published.append(suggestion)


@pytest.fixture
def store():
    return InMemorySuggestionStore()


@pytest.fixture
def racing_store():
    return InMemorySuggestionStore(yield_after_read=True)


@pytest.fixture
def feed():
    return RecordingFeedPublisher()


@pytest.fixture
def fakes():
    """Fake collaborator classes, for tests that need custom wiring."""

    class _Fakes:
        ContactProvider = FakeContactProvider
        AvailabilityProvider = FakeAvailabilityProvider
        AnchorProvider = FakeAnchorProvider
        UserDirectory = FakeUserDirectory
        FeedPublisher = RecordingFeedPublisher
        SuggestionStore = InMemorySuggestionStore

    return _Fakes


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply
