"""
Suggestion engine feature package.

This vertical slice keeps every layer of suggestion generation co-located
(domain models, the pure scoring and matching pipeline, repositories, the
lifecycle manager, jobs and API routers).
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as suggestions_router  # noqa: F401
from .jobs.generation_job import SuggestionGenerationJob, start_suggestion_generation_scheduler  # noqa: F401
from .lifecycle.service import SuggestionLifecycleManager  # noqa: F401
from .pipeline.generation import SuggestionGenerator  # noqa: F401
