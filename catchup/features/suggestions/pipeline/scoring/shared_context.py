"""
Shared-context scoring for 2-3 contact subsets.

Scoring breakdown:
- Common group memberships: 25 points each, 50 max
- Shared tags: 10 points each, 30 max
- Co-mentions in voice notes: 5 points each, 25 max
- Overlapping interests: 5 points each, 15 max
The total is capped at 100.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from catchup.features.suggestions.domain.models import (
    Contact,
    SharedContextBreakdown,
    SharedContextScore,
)

GROUP_WEIGHT, GROUP_CAP = 25.0, 50.0
TAG_WEIGHT, TAG_CAP = 10.0, 30.0
CO_MENTION_WEIGHT, CO_MENTION_CAP = 5.0, 25.0
INTEREST_WEIGHT, INTEREST_CAP = 5.0, 15.0
MAX_SCORE = 100.0

MIN_GROUP_SIZE = 2
MAX_GROUP_SIZE = 3


def _common(sets: Iterable[frozenset[str]]) -> tuple[str, ...]:
    iterator = iter(sets)
    shared = set(next(iterator, frozenset()))
    for values in iterator:
        shared &= values
    return tuple(sorted(shared))


class SharedContextScorer:
    """Order-independent affinity score for a candidate group."""

    def score(self, contacts: Sequence[Contact], co_mention_count: int = 0) -> SharedContextScore:
        if not MIN_GROUP_SIZE <= len(contacts) <= MAX_GROUP_SIZE:
            raise ValueError(
                f"Shared context needs {MIN_GROUP_SIZE}-{MAX_GROUP_SIZE} contacts, got {len(contacts)}"
            )

        breakdown = SharedContextBreakdown(
            common_groups=_common(contact.groups for contact in contacts),
            shared_tags=_common(contact.tags for contact in contacts),
            co_mention_count=max(co_mention_count, 0),
            overlapping_interests=_common(contact.interests for contact in contacts),
        )
        return SharedContextScore(score=self.score_breakdown(breakdown), breakdown=breakdown)

    @staticmethod
    def score_breakdown(breakdown: SharedContextBreakdown) -> float:
        total = (
            min(len(breakdown.common_groups) * GROUP_WEIGHT, GROUP_CAP)
            + min(len(breakdown.shared_tags) * TAG_WEIGHT, TAG_CAP)
            + min(breakdown.co_mention_count * CO_MENTION_WEIGHT, CO_MENTION_CAP)
            + min(len(breakdown.overlapping_interests) * INTEREST_WEIGHT, INTEREST_CAP)
        )
        return min(total, MAX_SCORE)
