from .service import (
    STANDARD_DISMISSAL_REASONS,
    SuggestionLifecycleManager,
    TransitionOutcome,
    dismissal_reason_templates,
    draft_message,
    is_actionable,
)

__all__ = [
    "STANDARD_DISMISSAL_REASONS",
    "SuggestionLifecycleManager",
    "TransitionOutcome",
    "dismissal_reason_templates",
    "draft_message",
    "is_actionable",
]
