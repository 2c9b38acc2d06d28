"""
Exceptions raised by the suggestion engine.

Lifecycle callers distinguish three outcomes: not found, conflict (wrong
starting state or a lost optimistic race) and validation errors.
"""


class SuggestionError(Exception):
    """Base exception for suggestion operations."""

    def __init__(
        self,
        message: str,
        suggestion_id: str | None = None,
        error_code: str | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.suggestion_id = suggestion_id
        self.error_code = error_code
        self.recoverable = recoverable


class SuggestionNotFoundError(SuggestionError):
    def __init__(self, suggestion_id: str):
        super().__init__(
            f"Suggestion {suggestion_id} not found",
            suggestion_id=suggestion_id,
            error_code="not_found",
        )


class SuggestionValidationError(SuggestionError):
    def __init__(self, message: str, suggestion_id: str | None = None):
        super().__init__(message, suggestion_id=suggestion_id, error_code="validation")


class SuggestionConflictError(SuggestionError):
    """The suggestion is not in a state that allows the requested transition."""


class InvalidTransitionError(SuggestionConflictError):
    def __init__(self, suggestion_id: str, current: str, target: str):
        super().__init__(
            f"Cannot move suggestion {suggestion_id} from {current} to {target}",
            suggestion_id=suggestion_id,
            error_code="invalid_transition",
        )
        self.current = current
        self.target = target


class ConcurrentUpdateError(SuggestionConflictError):
    def __init__(self, suggestion_id: str, expected: str):
        super().__init__(
            f"Suggestion {suggestion_id} changed concurrently (expected status {expected})",
            suggestion_id=suggestion_id,
            error_code="concurrent_update",
        )
        self.expected = expected


class CollaboratorUnavailableError(Exception):
    """An external collaborator (calendar, enrichment, anchors) could not be reached."""

    def __init__(self, message: str, collaborator: str, recoverable: bool = True):
        super().__init__(message)
        self.collaborator = collaborator
        self.recoverable = recoverable
