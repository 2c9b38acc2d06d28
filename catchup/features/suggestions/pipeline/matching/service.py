"""
Matching engine - assigns candidates to free slots and anchor events.

Time-bound allocation is a single greedy pass over candidates ordered by
(-priority, priority-group rank, contact ids); each takes the earliest
remaining slot it fits. Shared-activity allocation then attaches at most one
remaining candidate to each anchor event. Both phases share the same claimed
contact set and the per-run cap.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from catchup.config import EngineConfig
from catchup.features.suggestions.domain.models import (
    AnchorEvent,
    CommunicationStyle,
    Contact,
    ContactSnapshot,
    GroupCandidate,
    SharedContextBreakdown,
    SuggestionType,
    TimeSlot,
    TriggerType,
)
from catchup.infrastructure.observability.logging import get_logger

from ..grouping.service import GroupCandidateFinder
from ..scoring.recency import NEVER_CONTACTED_DAYS, RecencyScorer

logger = get_logger(__name__)

STOP_WORDS = frozenset(
    {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"}
)
MAX_EVENT_KEYWORDS = 10
KEYWORD_MIN_LENGTH = 4

INTEREST_MATCH_POINTS = 10.0
PROXIMITY_POINTS = 20.0
OVERDUE_POINTS = 5.0


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    contact_ids: tuple[str, ...]
    type: SuggestionType
    priority: float
    min_duration_minutes: int
    requires_in_person: bool
    priority_group_rank: int
    reasoning: str
    shared_context_score: float | None = None

    @property
    def sort_key(self) -> tuple:
        return (-self.priority, self.priority_group_rank, tuple(sorted(self.contact_ids)))


@dataclass(frozen=True, slots=True)
class Match:
    """A candidate bound to a slot; becomes one Suggestion."""

    candidate: MatchCandidate
    slot: TimeSlot
    trigger_type: TriggerType
    reasoning: str
    anchor_event_id: str | None = None


@dataclass(frozen=True, slots=True)
class ActivityFit:
    score: float
    reasons: tuple[str, ...]


def extract_keywords(title: str, description: str | None = None) -> list[str]:
    """Lowercased words of at least four characters, minus stop words, first ten."""
    words = re.split(r"\s+", f"{title} {description or ''}".lower())
    keywords = [word for word in words if len(word) >= KEYWORD_MIN_LENGTH and word not in STOP_WORDS]
    return keywords[:MAX_EVENT_KEYWORDS]


def _matching_keywords(keywords: Sequence[str], labels: Iterable[str]) -> list[str]:
    lowered = [label.lower() for label in labels if label]
    return [
        keyword for keyword in keywords if any(label in keyword or keyword in label for label in lowered)
    ]


def _near(event_location: str | None, contact_location: str | None) -> bool:
    if not event_location or not contact_location:
        return False
    event_loc, contact_loc = event_location.lower(), contact_location.lower()
    return contact_loc in event_loc or event_loc in contact_loc


def _slot_fits(candidate: MatchCandidate, slot: TimeSlot) -> bool:
    if slot.capacity_minutes < candidate.min_duration_minutes:
        return False
    return slot.in_person_eligible or not candidate.requires_in_person


class MatchingEngine:
    """Greedy, deterministic assignment of candidates to slots."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        recency: RecencyScorer | None = None,
        finder: GroupCandidateFinder | None = None,
    ):
        self.config = config or EngineConfig()
        self.recency = recency or RecencyScorer(self.config)
        self.finder = finder or GroupCandidateFinder(self.config)

    # =================================================================
    # CANDIDATES
    # =================================================================

    def priority_group_rank(self, contacts: Iterable[Contact]) -> int:
        """Index of the best configured priority group any member belongs to."""
        ranks = [
            index
            for contact in contacts
            for index, name in enumerate(self.config.priority_groups)
            if name in contact.groups
        ]
        return min(ranks, default=len(self.config.priority_groups))

    def is_overdue(self, contact: Contact, now: datetime) -> bool:
        return self.recency.overdue_ratio(contact, now) >= self.config.min_overdue_ratio

    def individual_candidate(self, contact: Contact, now: datetime) -> MatchCandidate:
        return MatchCandidate(
            contact_ids=(contact.id,),
            type=SuggestionType.INDIVIDUAL,
            priority=self.recency.score(contact, now),
            min_duration_minutes=self.config.individual_min_minutes,
            requires_in_person=contact.communication_style is CommunicationStyle.IRL,
            priority_group_rank=self.priority_group_rank([contact]),
            reasoning=self._individual_reasoning(contact, now),
        )

    def group_candidate(
        self,
        group: GroupCandidate,
        members: Sequence[Contact],
        now: datetime,
    ) -> MatchCandidate:
        mean_priority = sum(self.recency.score(member, now) for member in members) / len(members)
        priority = mean_priority + self.config.group_context_bonus * group.shared_context_score
        return MatchCandidate(
            contact_ids=group.contact_ids,
            type=SuggestionType.GROUP,
            priority=round(priority, 4),
            min_duration_minutes=group.min_duration_minutes,
            requires_in_person=any(
                member.communication_style is CommunicationStyle.IRL for member in members
            ),
            priority_group_rank=self.priority_group_rank(members),
            reasoning=self._group_reasoning(group.breakdown),
            shared_context_score=group.shared_context_score,
        )

    def build_candidates(
        self,
        contacts: Sequence[Contact],
        groups: Sequence[GroupCandidate],
        now: datetime,
        require_overdue: bool = True,
    ) -> list[MatchCandidate]:
        """
        Individual and group candidates for unarchived contacts.

        With require_overdue, an individual needs its overdue ratio at the
        configured minimum and a group needs every member to be overdue.
        """
        by_id = {contact.id: contact for contact in contacts if not contact.archived}
        candidates = [
            self.individual_candidate(contact, now)
            for contact in by_id.values()
            if not require_overdue or self.is_overdue(contact, now)
        ]
        for group in groups:
            members = [by_id.get(contact_id) for contact_id in group.contact_ids]
            if any(member is None for member in members):
                continue
            if require_overdue and not all(self.is_overdue(member, now) for member in members):
                continue
            candidates.append(self.group_candidate(group, members, now))
        return candidates

    def validate(self, candidates: Iterable[MatchCandidate]) -> list[MatchCandidate]:
        """Drop candidates that break size or uniqueness rules."""
        valid: list[MatchCandidate] = []
        for candidate in candidates:
            size = len(candidate.contact_ids)
            expected = SuggestionType.INDIVIDUAL if size == 1 else SuggestionType.GROUP
            if not 1 <= size <= 3 or len(set(candidate.contact_ids)) != size or candidate.type is not expected:
                logger.error(
                    "Dropping invalid match candidate",
                    contact_ids=list(candidate.contact_ids),
                    candidate_type=candidate.type.value,
                )
                continue
            valid.append(candidate)
        return valid

    # =================================================================
    # ALLOCATION
    # =================================================================

    def assign(
        self,
        candidates: Iterable[MatchCandidate],
        slots: Sequence[TimeSlot],
        claimed: Iterable[str] = (),
        limit: int | None = None,
    ) -> list[Match]:
        """
        Greedy time-bound allocation.

        Args:
            candidates: Individual and group candidates
            slots: Free slots; each hosts at most one suggestion
            claimed: Contact ids already held by outstanding suggestions
            limit: Maximum number of matches to return

        Returns:
            Matches in allocation order
        """
        limit = self.config.max_pending_per_user if limit is None else limit
        ordered = sorted(self.validate(candidates), key=lambda c: c.sort_key)
        free = sorted(slots, key=lambda s: (s.start, s.end))
        taken = [False] * len(free)
        claimed_ids = set(claimed)
        matches: list[Match] = []

        for candidate in ordered:
            if len(matches) >= limit:
                break
            if claimed_ids.intersection(candidate.contact_ids):
                continue
            index = next(
                (i for i, slot in enumerate(free) if not taken[i] and _slot_fits(candidate, slot)),
                None,
            )
            if index is None:
                continue
            taken[index] = True
            claimed_ids.update(candidate.contact_ids)
            matches.append(
                Match(
                    candidate=candidate,
                    slot=free[index],
                    trigger_type=TriggerType.TIMEBOUND,
                    reasoning=candidate.reasoning,
                )
            )
        return matches

    def activity_fit(
        self,
        members: Sequence[Contact],
        anchor: AnchorEvent,
        keywords: Sequence[str],
        now: datetime,
    ) -> ActivityFit | None:
        """
        How well an anchor event suits the given contacts.

        Every member must match on interests or location; the score is the
        mean of member scores. Returns None when the event does not qualify.
        """
        scores: list[float] = []
        reasons: list[str] = []
        for member in members:
            matched = _matching_keywords(keywords, [*member.tags, *member.interests])
            near = _near(anchor.location, member.location)
            if not matched and not near:
                return None
            score = INTEREST_MATCH_POINTS * len(matched)
            if matched:
                reasons.append(f"Shared interests: {', '.join(matched)}")
            if near:
                score += PROXIMITY_POINTS
                reasons.append(f"Located in {member.location}")
            if self.is_overdue(member, now):
                score += OVERDUE_POINTS
                days = self.recency.days_since(member.last_contact_date, now)
                if days < NEVER_CONTACTED_DAYS:
                    reasons.append(f"Haven't connected in {int(days)} days")
            scores.append(score)
        return ActivityFit(score=sum(scores) / len(scores), reasons=tuple(dict.fromkeys(reasons)))

    def assign_shared_activities(
        self,
        anchors: Sequence[AnchorEvent],
        candidates: Iterable[MatchCandidate],
        contacts_by_id: Mapping[str, Contact],
        now: datetime,
        claimed: Iterable[str] = (),
        limit: int | None = None,
    ) -> list[Match]:
        """Attach the best remaining candidate to each anchor event, one per event."""
        limit = self.config.max_pending_per_user if limit is None else limit
        pool = self.validate(candidates)
        claimed_ids = set(claimed)
        matches: list[Match] = []

        for anchor in sorted(anchors, key=lambda a: (a.start, a.id)):
            if len(matches) >= limit:
                break
            slot = TimeSlot(
                start=anchor.start,
                end=anchor.end,
                timezone=anchor.timezone,
                in_person_eligible=bool(anchor.location),
            )
            keywords = extract_keywords(anchor.title, anchor.description)

            best: tuple[tuple, MatchCandidate, ActivityFit] | None = None
            for candidate in pool:
                if claimed_ids.intersection(candidate.contact_ids) or not _slot_fits(candidate, slot):
                    continue
                fit = self.activity_fit(
                    [contacts_by_id[contact_id] for contact_id in candidate.contact_ids],
                    anchor,
                    keywords,
                    now,
                )
                if fit is None:
                    continue
                key = (-fit.score, *candidate.sort_key)
                if best is None or key < best[0]:
                    best = (key, candidate, fit)

            if best is None:
                continue
            _, candidate, fit = best
            claimed_ids.update(candidate.contact_ids)
            matches.append(
                Match(
                    candidate=candidate,
                    slot=slot,
                    trigger_type=TriggerType.SHARED_ACTIVITY,
                    reasoning=f"{anchor.title}: {'; '.join(fit.reasons)}",
                    anchor_event_id=anchor.id,
                )
            )
        return matches

    def plan(
        self,
        snapshot: ContactSnapshot,
        slots: Sequence[TimeSlot],
        anchors: Sequence[AnchorEvent],
        now: datetime,
        outstanding_contact_ids: Iterable[str] = (),
        outstanding_count: int = 0,
    ) -> list[Match]:
        """Time-bound matches followed by shared-activity matches for one user."""
        remaining = max(self.config.max_pending_per_user - outstanding_count, 0)
        claimed = frozenset(outstanding_contact_ids)
        if remaining == 0:
            logger.info(
                "Pending suggestion cap reached, nothing to plan",
                user_id=snapshot.user_id,
                outstanding_count=outstanding_count,
            )
            return []

        groups = self.finder.find(snapshot, exclude_ids=claimed)
        timebound = self.assign(
            self.build_candidates(snapshot.contacts, groups, now),
            slots,
            claimed=claimed,
            limit=remaining,
        )

        shared: list[Match] = []
        if anchors and len(timebound) < remaining:
            taken = claimed.union(*(match.candidate.contact_ids for match in timebound))
            shared = self.assign_shared_activities(
                anchors,
                self.build_candidates(snapshot.contacts, groups, now, require_overdue=False),
                snapshot.by_id(),
                now,
                claimed=taken,
                limit=remaining - len(timebound),
            )

        logger.info(
            "Matching complete",
            user_id=snapshot.user_id,
            slot_count=len(slots),
            group_candidates=len(groups),
            timebound_matches=len(timebound),
            shared_activity_matches=len(shared),
        )
        return timebound + shared

    # =================================================================
    # REASONING
    # =================================================================

    def _individual_reasoning(self, contact: Contact, now: datetime) -> str:
        days = self.recency.days_since(contact.last_contact_date, now)
        if days >= NEVER_CONTACTED_DAYS:
            return f"You haven't logged a catchup with {contact.display_name} yet"
        cadence = contact.frequency_preference.value
        text = f"Last connected {int(days)} days ago ({cadence} cadence)"
        if self.recency.is_recently_met(contact, now):
            text += "; marked as met recently"
        return text

    @staticmethod
    def _group_reasoning(breakdown: SharedContextBreakdown) -> str:
        parts: list[str] = []
        if breakdown.common_groups:
            parts.append(f"Common groups: {', '.join(breakdown.common_groups)}")
        if breakdown.shared_tags:
            parts.append(f"Shared tags: {', '.join(breakdown.shared_tags)}")
        if breakdown.co_mention_count:
            parts.append(f"Mentioned together in {breakdown.co_mention_count} voice notes")
        if breakdown.overlapping_interests:
            parts.append(f"Shared interests: {', '.join(breakdown.overlapping_interests)}")
        if not parts:
            return "Group catchup opportunity based on shared context"
        return f"Group catchup opportunity: {'; '.join(parts)}"
