"""
Domain models for the suggestion engine.

Everything the scoring and matching pipeline reads is frozen (contacts,
slots, candidates, snapshots) so a unit of work can share them freely
without copying. Suggestion is the one mutable record; only the lifecycle
manager changes it after creation.
"""

from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum


class FrequencyPreference(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    FLEXIBLE = "flexible"
    UNSET = "unset"

    @classmethod
    def parse(cls, value: str | None) -> "FrequencyPreference":
        """Map stored values (including NULL and unknown labels) to a preference."""
        if not value:
            return cls.UNSET
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNSET


class CommunicationStyle(str, Enum):
    IRL = "irl"
    URL = "url"
    NONE = "none"

    @classmethod
    def parse(cls, value: str | None) -> "CommunicationStyle":
        if not value:
            return cls.NONE
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.NONE


class SuggestionType(str, Enum):
    INDIVIDUAL = "individual"
    GROUP = "group"


class TriggerType(str, Enum):
    TIMEBOUND = "timebound"
    SHARED_ACTIVITY = "shared_activity"


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"
    SNOOZED = "snoozed"


@dataclass(frozen=True, slots=True)
class Contact:
    """A user's contact as seen by one generation run."""

    id: str
    display_name: str
    frequency_preference: FrequencyPreference = FrequencyPreference.UNSET
    last_contact_date: datetime | None = None
    recently_met: bool = False
    tags: frozenset[str] = frozenset()
    groups: frozenset[str] = frozenset()
    communication_style: CommunicationStyle = CommunicationStyle.NONE
    interests: frozenset[str] = frozenset()
    location: str | None = None
    archived: bool = False


@dataclass(frozen=True, slots=True)
class ContactSnapshot:
    """Contacts plus co-mention counts, fetched once per unit of work."""

    user_id: str
    contacts: tuple[Contact, ...]
    co_mentions: dict[frozenset[str], int] = field(default_factory=dict)

    def co_mention_count(self, contact_ids) -> int:
        return self.co_mentions.get(frozenset(contact_ids), 0)

    def by_id(self) -> dict[str, Contact]:
        return {contact.id: contact for contact in self.contacts}


@dataclass(frozen=True, slots=True)
class TimeSlot:
    start: datetime
    end: datetime
    timezone: str = "UTC"
    in_person_eligible: bool = True

    @property
    def capacity_minutes(self) -> int:
        return max(int((self.end - self.start).total_seconds() // 60), 0)


@dataclass(frozen=True, slots=True)
class BusyInterval:
    """A range the user is unavailable, as reported by the calendar collaborator."""

    start: datetime
    end: datetime
    timezone: str = "UTC"


@dataclass(frozen=True, slots=True)
class TimeBlock:
    """
    A weekly recurring wall-clock range.

    day_of_week follows the stored convention 0=Sunday .. 6=Saturday.
    An end earlier than the start wraps past midnight.
    """

    day_of_week: int
    start: time
    end: time

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise ValueError("Day of week must be between 0 (Sunday) and 6 (Saturday)")
        if self.start == self.end:
            raise ValueError("Time block start and end must differ")


@dataclass(frozen=True, slots=True)
class AvailabilityParams:
    timezone: str = "UTC"
    manual_time_blocks: tuple[TimeBlock, ...] = ()
    commute_windows: tuple[TimeBlock, ...] = ()
    nighttime_start: time | None = None
    nighttime_end: time | None = None


@dataclass(frozen=True, slots=True)
class AnchorEvent:
    """An already-scheduled event the user attends; shared-activity suggestions attach to it."""

    id: str
    title: str
    start: datetime
    end: datetime
    timezone: str = "UTC"
    description: str | None = None
    location: str | None = None


@dataclass(frozen=True, slots=True)
class SharedContextBreakdown:
    common_groups: tuple[str, ...] = ()
    shared_tags: tuple[str, ...] = ()
    co_mention_count: int = 0
    overlapping_interests: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SharedContextScore:
    score: float
    breakdown: SharedContextBreakdown


@dataclass(frozen=True, slots=True)
class GroupCandidate:
    contact_ids: tuple[str, ...]
    shared_context_score: float
    breakdown: SharedContextBreakdown
    min_duration_minutes: int


@dataclass(slots=True)
class Suggestion:
    id: str
    user_id: str
    type: SuggestionType
    contact_ids: tuple[str, ...]
    slot: TimeSlot
    trigger_type: TriggerType
    reasoning: str
    priority: float
    generation_batch_id: str
    created_at: datetime
    updated_at: datetime
    shared_context_score: float | None = None
    status: SuggestionStatus = SuggestionStatus.PENDING
    dismissal_reason: str | None = None
    snoozed_until: datetime | None = None
    calendar_event_id: str | None = None


@dataclass(frozen=True, slots=True)
class InteractionLog:
    id: str
    user_id: str
    contact_id: str
    date: datetime
    type: str
    notes: str
    suggestion_id: str | None = None
