"""
Group candidate discovery.

Enumerates 2- and 3-contact subsets worth suggesting together. Every group
and tag label gets one bit; a subset is only scored when each pair of its
members shares at least one bit, which rules out the bulk of combinations
with a single AND per pair.
"""

from __future__ import annotations

from collections.abc import Sequence
from itertools import combinations

from catchup.config import EngineConfig
from catchup.features.suggestions.domain.models import (
    Contact,
    ContactSnapshot,
    GroupCandidate,
)
from catchup.infrastructure.observability.logging import get_logger

from ..scoring.shared_context import SharedContextScorer

logger = get_logger(__name__)


def _label_masks(contacts: Sequence[Contact]) -> list[int]:
    """One bitset per contact over the union of group and tag labels."""
    bit_for: dict[str, int] = {}
    masks: list[int] = []
    for contact in contacts:
        mask = 0
        labels = [f"g:{name}" for name in contact.groups] + [f"t:{name}" for name in contact.tags]
        for label in labels:
            bit = bit_for.setdefault(label, len(bit_for))
            mask |= 1 << bit
        masks.append(mask)
    return masks


class GroupCandidateFinder:
    def __init__(
        self,
        config: EngineConfig | None = None,
        scorer: SharedContextScorer | None = None,
    ):
        self.config = config or EngineConfig()
        self.scorer = scorer or SharedContextScorer()

    def min_duration_for(self, size: int) -> int:
        """Meeting length needed for ``size`` contacts (30/60/90 minutes by default)."""
        return self.config.individual_min_minutes + self.config.group_extra_minutes * (size - 1)

    def find(
        self,
        snapshot: ContactSnapshot,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> list[GroupCandidate]:
        """
        Group candidates at or above the configured threshold.

        Args:
            snapshot: The user's contacts and co-mention counts
            exclude_ids: Contacts already held by outstanding suggestions

        Returns:
            Candidates sorted by descending shared-context score, ties by contact ids
        """
        contacts = sorted(
            (c for c in snapshot.contacts if not c.archived and c.id not in exclude_ids),
            key=lambda c: c.id,
        )
        masks = _label_masks(contacts)
        count = len(contacts)

        linked = [[False] * count for _ in range(count)]
        for i, j in combinations(range(count), 2):
            linked[i][j] = linked[j][i] = bool(masks[i] & masks[j])

        subsets: list[tuple[int, ...]] = [pair for pair in combinations(range(count), 2) if linked[pair[0]][pair[1]]]
        for i, j in list(subsets):
            for k in range(j + 1, count):
                if linked[i][k] and linked[j][k]:
                    subsets.append((i, j, k))

        candidates: list[GroupCandidate] = []
        for indexes in subsets:
            members = [contacts[index] for index in indexes]
            ids = tuple(member.id for member in members)
            result = self.scorer.score(members, snapshot.co_mention_count(ids))
            if result.score < self.config.group_threshold:
                continue
            candidates.append(
                GroupCandidate(
                    contact_ids=ids,
                    shared_context_score=result.score,
                    breakdown=result.breakdown,
                    min_duration_minutes=self.min_duration_for(len(ids)),
                )
            )

        candidates.sort(key=lambda c: (-c.shared_context_score, c.contact_ids))

        logger.debug(
            "Group candidates found",
            user_id=snapshot.user_id,
            contact_count=count,
            subsets_scored=len(subsets),
            candidate_count=len(candidates),
        )
        return candidates
