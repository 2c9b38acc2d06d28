"""Ports for the suggestion engine. Implemented by repository adapters and test fakes."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from catchup.features.suggestions.domain.models import (
    AnchorEvent,
    AvailabilityParams,
    BusyInterval,
    Contact,
    ContactSnapshot,
    InteractionLog,
    Suggestion,
    SuggestionStatus,
)


@dataclass(frozen=True, slots=True)
class StatusTransition:
    """
    One compare-and-set status change plus its side effects.

    The store applies the whole transition atomically, and only when the
    stored status still equals ``expected_status``.
    """

    suggestion_id: str
    user_id: str
    expected_status: SuggestionStatus
    new_status: SuggestionStatus
    at: datetime
    dismissal_reason: str | None = None
    snoozed_until: datetime | None = None
    interaction_logs: tuple[InteractionLog, ...] = ()
    recently_met_contact_ids: tuple[str, ...] = field(default_factory=tuple)


class AvailabilityProvider(Protocol):
    async def get_busy_intervals(
        self, user_id: str, window_start: datetime, window_end: datetime
    ) -> list[BusyInterval] | None:
        """Busy ranges overlapping the window, or None when no calendar data exists."""
        ...

    async def get_availability_params(self, user_id: str) -> AvailabilityParams | None:
        ...


class ContactProvider(Protocol):
    async def get_snapshot(self, user_id: str) -> ContactSnapshot:
        """All of the user's contacts with group/tag labels and co-mention counts."""
        ...

    async def get_contacts(self, user_id: str, contact_ids: tuple[str, ...]) -> list[Contact]:
        ...


class AnchorEventProvider(Protocol):
    async def get_anchor_events(
        self, user_id: str, window_start: datetime, window_end: datetime
    ) -> list[AnchorEvent]:
        ...


class CalendarFeedPublisher(Protocol):
    async def publish(self, suggestion: Suggestion) -> None:
        """Add an accepted suggestion to the user's calendar feed."""
        ...


class UserDirectory(Protocol):
    async def list_users_needing_refresh(self) -> list[str]:
        ...


class SuggestionStore(Protocol):
    async def batch_exists(self, user_id: str, window_bucket: int) -> bool:
        ...

    async def save_batch(
        self,
        user_id: str,
        window_bucket: int,
        batch_id: str,
        suggestions: list[Suggestion],
    ) -> bool:
        """
        Persist a batch in one transaction.

        Returns False (writing nothing) when the (user, window bucket) batch
        already exists.
        """
        ...

    async def get_outstanding(self, user_id: str) -> list[Suggestion]:
        """Pending and snoozed suggestions, regardless of snooze expiry."""
        ...

    async def get(self, user_id: str, suggestion_id: str) -> Suggestion | None:
        ...

    async def list_actionable(self, user_id: str, now: datetime) -> list[Suggestion]:
        ...

    async def apply_transition(self, transition: StatusTransition) -> Suggestion | None:
        """Apply the transition; None when the stored status no longer matches."""
        ...
