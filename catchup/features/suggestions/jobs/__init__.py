"""
Job runners for the suggestion engine.
"""

from .generation_job import (
    SuggestionGenerationJob,
    SuggestionGenerationJobError,
    run_suggestion_generation_once,
    start_suggestion_generation_scheduler,
)

__all__ = [
    "SuggestionGenerationJob",
    "SuggestionGenerationJobError",
    "run_suggestion_generation_once",
    "start_suggestion_generation_scheduler",
]
