from catchup.features.suggestions.domain import Suggestion
from catchup.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class LoggingCalendarFeedPublisher:
    """Default CalendarFeedPublisher until a feed service is wired in; records the publish only."""

    async def publish(self, suggestion: Suggestion) -> None:
        logger.info(
            "Suggestion published to calendar feed",
            suggestion_id=suggestion.id,
            user_id=suggestion.user_id,
            start=suggestion.slot.start.isoformat(),
            end=suggestion.slot.end.isoformat(),
        )
