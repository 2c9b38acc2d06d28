"""
PostgreSQL adapters for the suggestion engine ports.
"""

from .calendar_repository import CalendarRepository, UserRepository, calendar_repository, user_repository
from .contact_repository import ContactRepository, contact_repository
from .feed_publisher import LoggingCalendarFeedPublisher
from .suggestion_repository import SuggestionRepository, SuggestionRepositoryError, suggestion_repository

__all__ = [
    "CalendarRepository",
    "ContactRepository",
    "LoggingCalendarFeedPublisher",
    "SuggestionRepository",
    "SuggestionRepositoryError",
    "UserRepository",
    "calendar_repository",
    "contact_repository",
    "suggestion_repository",
    "user_repository",
]
