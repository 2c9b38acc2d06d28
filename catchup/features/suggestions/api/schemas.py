"""
Suggestion API request/response models.
Used by the suggestion routes for input validation and serialization.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from catchup.features.suggestions.domain import Suggestion


class DismissSuggestionRequest(BaseModel):
    """Request for dismissing a suggestion."""

    reason: str = Field(..., min_length=1, max_length=500, description="Why the suggestion was dismissed")


class SnoozeSuggestionRequest(BaseModel):
    """Request for snoozing a suggestion."""

    hours: float = Field(..., gt=0, le=24 * 90, description="Snooze duration in hours")


class TimeSlotResponse(BaseModel):
    start: datetime
    end: datetime
    timezone: str
    in_person_eligible: bool


class SuggestionResponse(BaseModel):
    """Suggestion as shown in the user's feed."""

    id: str
    type: str
    contact_ids: list[str]
    trigger_type: str
    slot: TimeSlotResponse
    reasoning: str
    priority: float
    shared_context_score: float | None = None
    status: str
    dismissal_reason: str | None = None
    snoozed_until: datetime | None = None
    calendar_event_id: str | None = None
    generation_batch_id: str
    created_at: datetime

    @classmethod
    def from_domain(cls, suggestion: Suggestion) -> "SuggestionResponse":
        return cls(
            id=suggestion.id,
            type=suggestion.type.value,
            contact_ids=list(suggestion.contact_ids),
            trigger_type=suggestion.trigger_type.value,
            slot=TimeSlotResponse(
                start=suggestion.slot.start,
                end=suggestion.slot.end,
                timezone=suggestion.slot.timezone,
                in_person_eligible=suggestion.slot.in_person_eligible,
            ),
            reasoning=suggestion.reasoning,
            priority=suggestion.priority,
            shared_context_score=suggestion.shared_context_score,
            status=suggestion.status.value,
            dismissal_reason=suggestion.dismissal_reason,
            snoozed_until=suggestion.snoozed_until,
            calendar_event_id=suggestion.calendar_event_id,
            generation_batch_id=suggestion.generation_batch_id,
            created_at=suggestion.created_at,
        )


class SuggestionListResponse(BaseModel):
    suggestions: list[SuggestionResponse]
    total_count: int


class TransitionResponse(BaseModel):
    """Outcome of accept, dismiss or snooze."""

    suggestion: SuggestionResponse
    frequency_prompt_contact_ids: list[str] = Field(
        default_factory=list, description="Contacts to ask for a catch-up frequency"
    )
    draft_message: str | None = None
    published_to_feed: bool = False


class DismissalReasonsResponse(BaseModel):
    reasons: list[str]
