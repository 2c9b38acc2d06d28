"""
Suggestion routes.

Lists the authenticated user's actionable suggestions and applies accept,
dismiss and snooze actions through the lifecycle manager.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from catchup.auth.verify import auth_dependency
from catchup.features.suggestions.domain import (
    SuggestionConflictError,
    SuggestionNotFoundError,
    SuggestionValidationError,
)
from catchup.features.suggestions.lifecycle import SuggestionLifecycleManager, TransitionOutcome
from catchup.infrastructure.observability.logging import get_logger

from .schemas import (
    DismissalReasonsResponse,
    DismissSuggestionRequest,
    SnoozeSuggestionRequest,
    SuggestionListResponse,
    SuggestionResponse,
    TransitionResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


def get_lifecycle_manager() -> SuggestionLifecycleManager:
    """Lifecycle manager wired to the PostgreSQL repositories."""
    from catchup.features.suggestions.repository import (
        LoggingCalendarFeedPublisher,
        contact_repository,
        suggestion_repository,
    )

    return SuggestionLifecycleManager(
        store=suggestion_repository,
        contacts=contact_repository,
        feed=LoggingCalendarFeedPublisher(),
    )


def _user_id(claims: dict) -> str:
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return user_id


def _to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, SuggestionNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, SuggestionConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, SuggestionValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Suggestion update failed"
    )


def _transition_response(outcome: TransitionOutcome) -> TransitionResponse:
    return TransitionResponse(
        suggestion=SuggestionResponse.from_domain(outcome.suggestion),
        frequency_prompt_contact_ids=list(outcome.frequency_prompt_contact_ids),
        draft_message=outcome.draft_message,
        published_to_feed=outcome.published,
    )


@router.get("", response_model=SuggestionListResponse)
async def list_suggestions(
    claims: dict = Depends(auth_dependency),
    manager: SuggestionLifecycleManager = Depends(get_lifecycle_manager),
):
    """Pending suggestions plus snoozed ones whose snooze has elapsed."""
    user_id = _user_id(claims)
    try:
        suggestions = await manager.list_actionable(user_id)
    except Exception as e:
        logger.error("Error listing suggestions", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to list suggestions"
        )

    return SuggestionListResponse(
        suggestions=[SuggestionResponse.from_domain(s) for s in suggestions],
        total_count=len(suggestions),
    )


@router.get("/{suggestion_id}/dismissal-reasons", response_model=DismissalReasonsResponse)
async def get_dismissal_reasons(
    suggestion_id: str,
    claims: dict = Depends(auth_dependency),
    manager: SuggestionLifecycleManager = Depends(get_lifecycle_manager),
):
    user_id = _user_id(claims)
    try:
        reasons = await manager.dismissal_reasons(user_id, suggestion_id)
    except Exception as e:
        logger.warning("Dismissal reasons lookup failed", user_id=user_id, suggestion_id=suggestion_id, error=str(e))
        raise _to_http_error(e)
    return DismissalReasonsResponse(reasons=reasons)


@router.post("/{suggestion_id}/accept", response_model=TransitionResponse)
async def accept_suggestion(
    suggestion_id: str,
    claims: dict = Depends(auth_dependency),
    manager: SuggestionLifecycleManager = Depends(get_lifecycle_manager),
):
    user_id = _user_id(claims)
    try:
        outcome = await manager.accept(user_id, suggestion_id)
    except Exception as e:
        logger.warning("Accept failed", user_id=user_id, suggestion_id=suggestion_id, error=str(e))
        raise _to_http_error(e)
    return _transition_response(outcome)


@router.post("/{suggestion_id}/dismiss", response_model=TransitionResponse)
async def dismiss_suggestion(
    suggestion_id: str,
    request: DismissSuggestionRequest,
    claims: dict = Depends(auth_dependency),
    manager: SuggestionLifecycleManager = Depends(get_lifecycle_manager),
):
    user_id = _user_id(claims)
    try:
        outcome = await manager.dismiss(user_id, suggestion_id, request.reason)
    except Exception as e:
        logger.warning("Dismiss failed", user_id=user_id, suggestion_id=suggestion_id, error=str(e))
        raise _to_http_error(e)
    return _transition_response(outcome)


@router.post("/{suggestion_id}/snooze", response_model=TransitionResponse)
async def snooze_suggestion(
    suggestion_id: str,
    request: SnoozeSuggestionRequest,
    claims: dict = Depends(auth_dependency),
    manager: SuggestionLifecycleManager = Depends(get_lifecycle_manager),
):
    user_id = _user_id(claims)
    try:
        outcome = await manager.snooze(user_id, suggestion_id, request.hours)
    except Exception as e:
        logger.warning("Snooze failed", user_id=user_id, suggestion_id=suggestion_id, error=str(e))
        raise _to_http_error(e)
    return _transition_response(outcome)
