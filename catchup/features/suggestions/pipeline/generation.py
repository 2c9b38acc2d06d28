"""
Pure per-user suggestion generation.

Composes availability resolution, scoring, group discovery and matching into
a list of Suggestion records. No I/O happens here: the orchestrator fetches a
GenerationInput, calls generate(), and persists the result.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from catchup.config import EngineConfig
from catchup.features.suggestions.domain.models import (
    AnchorEvent,
    AvailabilityParams,
    BusyInterval,
    ContactSnapshot,
    Suggestion,
    SuggestionStatus,
)
from catchup.infrastructure.observability.logging import get_logger

from .availability.service import AvailabilityResolver
from .matching.service import MatchingEngine

logger = get_logger(__name__)

BATCH_NAMESPACE = uuid.UUID("6f1c7a52-3d7e-4b8e-9a51-2f0c9d4e8b17")


def window_bucket(now: datetime, bucket_hours: int) -> int:
    """Index of the generation window containing ``now``."""
    seconds = max(bucket_hours, 1) * 3600
    return int(now.timestamp() // seconds)


def batch_id_for(user_id: str, bucket: int) -> str:
    """Deterministic batch id; the same user and window always map to the same id."""
    return str(uuid.uuid5(BATCH_NAMESPACE, f"{user_id}:{bucket}"))


def suggestion_id_for(batch_id: str, contact_ids: tuple[str, ...]) -> str:
    return str(uuid.uuid5(uuid.UUID(batch_id), ",".join(sorted(contact_ids))))


@dataclass(frozen=True, slots=True)
class GenerationInput:
    """Everything one unit of work reads, fetched before any computation."""

    user_id: str
    snapshot: ContactSnapshot
    now: datetime
    window_start: datetime
    window_end: datetime
    busy_intervals: tuple[BusyInterval, ...] | None = None
    params: AvailabilityParams | None = None
    anchors: tuple[AnchorEvent, ...] = ()
    outstanding_contact_ids: frozenset[str] = field(default_factory=frozenset)
    outstanding_count: int = 0

    @classmethod
    def for_lookahead(cls, user_id: str, snapshot: ContactSnapshot, now: datetime, days: int, **kwargs):
        return cls(
            user_id=user_id,
            snapshot=snapshot,
            now=now,
            window_start=now,
            window_end=now + timedelta(days=days),
            **kwargs,
        )


class SuggestionGenerator:
    """Turns a GenerationInput into pending suggestions for one batch."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        resolver: AvailabilityResolver | None = None,
        engine: MatchingEngine | None = None,
    ):
        self.config = config or EngineConfig()
        self.resolver = resolver or AvailabilityResolver(self.config)
        self.engine = engine or MatchingEngine(self.config)

    def generate(self, request: GenerationInput, batch_id: str) -> list[Suggestion]:
        slots = self.resolver.resolve(
            request.busy_intervals,
            request.params,
            request.window_start,
            request.window_end,
        )
        matches = self.engine.plan(
            request.snapshot,
            slots,
            request.anchors,
            request.now,
            outstanding_contact_ids=request.outstanding_contact_ids,
            outstanding_count=request.outstanding_count,
        )

        created_at = request.now.astimezone(UTC)
        suggestions = [
            Suggestion(
                id=suggestion_id_for(batch_id, match.candidate.contact_ids),
                user_id=request.user_id,
                type=match.candidate.type,
                contact_ids=match.candidate.contact_ids,
                slot=match.slot,
                trigger_type=match.trigger_type,
                reasoning=match.reasoning,
                priority=match.candidate.priority,
                generation_batch_id=batch_id,
                created_at=created_at,
                updated_at=created_at,
                shared_context_score=match.candidate.shared_context_score,
                status=SuggestionStatus.PENDING,
                calendar_event_id=match.anchor_event_id,
            )
            for match in matches
        ]

        logger.debug(
            "Suggestions generated",
            user_id=request.user_id,
            batch_id=batch_id,
            slot_count=len(slots),
            suggestion_count=len(suggestions),
        )
        return suggestions
