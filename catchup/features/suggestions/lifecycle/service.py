"""
Suggestion lifecycle - accept, dismiss and snooze.

pending -> accepted | dismissed | snoozed; accepted and dismissed are final.
A snoozed suggestion acts as pending again once its snooze has elapsed, while
its stored status stays 'snoozed'. Every transition is a compare-and-set on
the status read beforehand, so two concurrent actions on the same suggestion
cannot both succeed.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from catchup.features.suggestions.domain import (
    Contact,
    ConcurrentUpdateError,
    FrequencyPreference,
    InteractionLog,
    InvalidTransitionError,
    Suggestion,
    SuggestionNotFoundError,
    SuggestionStatus,
    SuggestionValidationError,
    TriggerType,
)
from catchup.features.suggestions.ports import (
    CalendarFeedPublisher,
    ContactProvider,
    StatusTransition,
    SuggestionStore,
)
from catchup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MET_TOO_RECENTLY = "met too recently"
HANGOUT_INTERACTION = "hangout"

STANDARD_DISMISSAL_REASONS = (
    "Met too recently",
    "Not interested in connecting right now",
    "Timing doesn't work",
    "Prefer to connect at a different time",
)


@dataclass(slots=True)
class TransitionOutcome:
    """Result of a lifecycle action as returned to callers."""

    suggestion: Suggestion
    frequency_prompt_contact_ids: tuple[str, ...] = ()
    interaction_logs: tuple[InteractionLog, ...] = ()
    draft_message: str | None = None
    published: bool = False


def is_actionable(suggestion: Suggestion, now: datetime) -> bool:
    """Pending, or snoozed with the snooze already elapsed."""
    if suggestion.status is SuggestionStatus.PENDING:
        return True
    return (
        suggestion.status is SuggestionStatus.SNOOZED
        and suggestion.snoozed_until is not None
        and now >= suggestion.snoozed_until
    )


def dismissal_reason_templates(contacts: list[Contact]) -> list[str]:
    """Quick-pick dismissal reasons for the suggestion's contacts."""
    reasons = list(STANDARD_DISMISSAL_REASONS)
    for contact in contacts:
        if contact.location:
            reasons.append(f"Not in {contact.location} currently")
        if contact.frequency_preference is not FrequencyPreference.UNSET:
            preference = contact.frequency_preference.value.capitalize()
            reasons.append(f"{preference} is too frequent")
    return list(dict.fromkeys(reasons))


def draft_message(suggestion: Suggestion, contacts: list[Contact]) -> str:
    names = ", ".join(contact.display_name for contact in contacts) or "there"
    try:
        tz = ZoneInfo(suggestion.slot.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        tz = UTC
    when = suggestion.slot.start.astimezone(tz).strftime("%A, %B %d at %I:%M %p").replace(" 0", " ")
    if suggestion.trigger_type is TriggerType.SHARED_ACTIVITY:
        event = suggestion.reasoning.split(":", 1)[0]
        return f"Hey {names}! I'm going to {event} on {when}. Would you like to join?"
    return f"Hey {names}! It's been a while! Would you be free to catch up on {when}?"


class SuggestionLifecycleManager:
    """Applies user actions to suggestions through the SuggestionStore port."""

    def __init__(
        self,
        store: SuggestionStore,
        contacts: ContactProvider,
        feed: CalendarFeedPublisher,
        clock=None,
    ):
        self.store = store
        self.contacts = contacts
        self.feed = feed
        self._clock = clock or (lambda: datetime.now(UTC))

    async def list_actionable(self, user_id: str) -> list[Suggestion]:
        return await self.store.list_actionable(user_id, self._clock())

    async def dismissal_reasons(self, user_id: str, suggestion_id: str) -> list[str]:
        suggestion = await self._load(user_id, suggestion_id)
        return dismissal_reason_templates(
            await self.contacts.get_contacts(user_id, suggestion.contact_ids)
        )

    async def accept(self, user_id: str, suggestion_id: str) -> TransitionOutcome:
        """
        Accept a suggestion.

        Logs a hangout interaction per contact, marks every contact as met
        now, and publishes the suggestion to the calendar feed after commit.
        Contacts without a frequency preference are returned for prompting.
        """
        now = self._clock()
        suggestion = await self._load(user_id, suggestion_id)
        self._require_actionable(suggestion, SuggestionStatus.ACCEPTED, now)

        logs = tuple(
            InteractionLog(
                id=str(uuid.uuid4()),
                user_id=user_id,
                contact_id=contact_id,
                date=now,
                type=HANGOUT_INTERACTION,
                notes=f"Accepted suggestion: {suggestion.reasoning}",
                suggestion_id=suggestion.id,
            )
            for contact_id in suggestion.contact_ids
        )
        updated = await self._apply(
            suggestion,
            StatusTransition(
                suggestion_id=suggestion.id,
                user_id=user_id,
                expected_status=suggestion.status,
                new_status=SuggestionStatus.ACCEPTED,
                at=now,
                interaction_logs=logs,
                recently_met_contact_ids=suggestion.contact_ids,
            ),
        )

        contacts = await self.contacts.get_contacts(user_id, suggestion.contact_ids)
        published = await self._publish(updated)

        logger.info(
            "Suggestion accepted",
            user_id=user_id,
            suggestion_id=suggestion.id,
            contact_count=len(suggestion.contact_ids),
            published=published,
        )
        return TransitionOutcome(
            suggestion=updated,
            frequency_prompt_contact_ids=self._needs_frequency_prompt(contacts),
            interaction_logs=logs,
            draft_message=draft_message(updated, contacts),
            published=published,
        )

    async def dismiss(self, user_id: str, suggestion_id: str, reason: str) -> TransitionOutcome:
        """
        Dismiss a suggestion with a reason.

        A reason mentioning "met too recently" also marks the contacts as met
        now, without logging an interaction.
        """
        if not reason or not reason.strip():
            raise SuggestionValidationError("A dismissal reason is required", suggestion_id)

        now = self._clock()
        reason = reason.strip()
        suggestion = await self._load(user_id, suggestion_id)
        self._require_actionable(suggestion, SuggestionStatus.DISMISSED, now)

        met_recently = MET_TOO_RECENTLY in reason.lower()
        updated = await self._apply(
            suggestion,
            StatusTransition(
                suggestion_id=suggestion.id,
                user_id=user_id,
                expected_status=suggestion.status,
                new_status=SuggestionStatus.DISMISSED,
                at=now,
                dismissal_reason=reason,
                recently_met_contact_ids=suggestion.contact_ids if met_recently else (),
            ),
        )

        prompts: tuple[str, ...] = ()
        if met_recently:
            prompts = self._needs_frequency_prompt(
                await self.contacts.get_contacts(user_id, suggestion.contact_ids)
            )

        logger.info(
            "Suggestion dismissed",
            user_id=user_id,
            suggestion_id=suggestion.id,
            met_too_recently=met_recently,
        )
        return TransitionOutcome(suggestion=updated, frequency_prompt_contact_ids=prompts)

    async def snooze(self, user_id: str, suggestion_id: str, hours: float) -> TransitionOutcome:
        if hours is None or hours <= 0:
            raise SuggestionValidationError("Snooze duration must be positive", suggestion_id)

        now = self._clock()
        suggestion = await self._load(user_id, suggestion_id)
        self._require_actionable(suggestion, SuggestionStatus.SNOOZED, now)

        snoozed_until = now + timedelta(hours=hours)
        updated = await self._apply(
            suggestion,
            StatusTransition(
                suggestion_id=suggestion.id,
                user_id=user_id,
                expected_status=suggestion.status,
                new_status=SuggestionStatus.SNOOZED,
                at=now,
                snoozed_until=snoozed_until,
            ),
        )

        logger.info(
            "Suggestion snoozed",
            user_id=user_id,
            suggestion_id=suggestion.id,
            snoozed_until=snoozed_until.isoformat(),
        )
        return TransitionOutcome(suggestion=updated)

    async def _load(self, user_id: str, suggestion_id: str) -> Suggestion:
        suggestion = await self.store.get(user_id, suggestion_id)
        if suggestion is None:
            raise SuggestionNotFoundError(suggestion_id)
        return suggestion

    @staticmethod
    def _require_actionable(suggestion: Suggestion, target: SuggestionStatus, now: datetime) -> None:
        if not is_actionable(suggestion, now):
            raise InvalidTransitionError(suggestion.id, suggestion.status.value, target.value)

    async def _apply(self, suggestion: Suggestion, transition: StatusTransition) -> Suggestion:
        updated = await self.store.apply_transition(transition)
        if updated is None:
            logger.warning(
                "Suggestion transition lost a concurrent update",
                suggestion_id=suggestion.id,
                expected_status=transition.expected_status.value,
                target_status=transition.new_status.value,
            )
            raise ConcurrentUpdateError(suggestion.id, transition.expected_status.value)
        return updated

    async def _publish(self, suggestion: Suggestion) -> bool:
        try:
            await self.feed.publish(suggestion)
            return True
        except Exception as e:
            # Acceptance is already committed
            logger.error(
                "Calendar feed publication failed",
                suggestion_id=suggestion.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

    @staticmethod
    def _needs_frequency_prompt(contacts: list[Contact]) -> tuple[str, ...]:
        return tuple(
            contact.id
            for contact in contacts
            if contact.frequency_preference is FrequencyPreference.UNSET
        )
