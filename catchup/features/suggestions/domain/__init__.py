"""
Domain subpackage for the suggestion engine.
"""

from .errors import (
    CollaboratorUnavailableError,
    ConcurrentUpdateError,
    InvalidTransitionError,
    SuggestionConflictError,
    SuggestionError,
    SuggestionNotFoundError,
    SuggestionValidationError,
)
from .models import (
    AnchorEvent,
    AvailabilityParams,
    BusyInterval,
    CommunicationStyle,
    Contact,
    ContactSnapshot,
    FrequencyPreference,
    GroupCandidate,
    InteractionLog,
    SharedContextBreakdown,
    SharedContextScore,
    Suggestion,
    SuggestionStatus,
    SuggestionType,
    TimeBlock,
    TimeSlot,
    TriggerType,
)

__all__ = [
    "AnchorEvent",
    "AvailabilityParams",
    "BusyInterval",
    "CollaboratorUnavailableError",
    "CommunicationStyle",
    "ConcurrentUpdateError",
    "Contact",
    "ContactSnapshot",
    "FrequencyPreference",
    "GroupCandidate",
    "InteractionLog",
    "InvalidTransitionError",
    "SharedContextBreakdown",
    "SharedContextScore",
    "Suggestion",
    "SuggestionConflictError",
    "SuggestionError",
    "SuggestionNotFoundError",
    "SuggestionStatus",
    "SuggestionType",
    "SuggestionValidationError",
    "TimeBlock",
    "TimeSlot",
    "TriggerType",
]
