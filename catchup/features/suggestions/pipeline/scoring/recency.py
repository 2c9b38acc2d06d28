"""
Recency scoring - priority rises as a contact becomes overdue for their cadence.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

from catchup.config import EngineConfig
from catchup.features.suggestions.domain.models import Contact, FrequencyPreference

TARGET_INTERVAL_DAYS: dict[FrequencyPreference, int] = {
    FrequencyPreference.DAILY: 1,
    FrequencyPreference.WEEKLY: 7,
    FrequencyPreference.MONTHLY: 30,
    FrequencyPreference.YEARLY: 365,
    FrequencyPreference.FLEXIBLE: 90,
    FrequencyPreference.UNSET: 30,
}

# Stand-in for "never contacted"; large enough to saturate every cadence.
NEVER_CONTACTED_DAYS = 36_500.0

MAX_SCORE = 100.0
CURVE_STEEPNESS = 4.0


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class RecencyScorer:
    """
    Logistic recency decay.

    score = 100 / (1 + e^(-4 (r - 1))) where r = days_since / target_days:
    about 2 for a contact just seen, 50 exactly on cadence, close to 100
    once two cadences have passed. Deterministic for fixed inputs because the
    clock is passed in.
    """

    def __init__(self, config: EngineConfig | None = None):
        self.config = config or EngineConfig()

    @staticmethod
    def target_days(preference: FrequencyPreference | None) -> int:
        return TARGET_INTERVAL_DAYS.get(preference, TARGET_INTERVAL_DAYS[FrequencyPreference.UNSET])

    @staticmethod
    def days_since(last_contact_date: datetime | None, now: datetime) -> float:
        if last_contact_date is None:
            return NEVER_CONTACTED_DAYS
        elapsed = (_as_utc(now) - _as_utc(last_contact_date)).total_seconds() / 86400
        return max(elapsed, 0.0)

    def overdue_ratio(self, contact: Contact, now: datetime) -> float:
        return self.days_since(contact.last_contact_date, now) / self.target_days(
            contact.frequency_preference
        )

    @staticmethod
    def curve(ratio: float) -> float:
        exponent = -CURVE_STEEPNESS * (ratio - 1.0)
        # e^x overflows past ~709; the score is ~0 long before that
        if exponent > 700:
            return 0.0
        return MAX_SCORE / (1.0 + math.exp(exponent))

    def is_recently_met(self, contact: Contact, now: datetime) -> bool:
        """The stored flag only counts until the contact is due again."""
        return contact.recently_met and self.overdue_ratio(contact, now) < 1.0

    def score(self, contact: Contact, now: datetime) -> float:
        """Priority for a single contact, bounded to [0, 100]."""
        value = self.curve(self.overdue_ratio(contact, now))
        if self.is_recently_met(contact, now):
            value *= self.config.recently_met_multiplier
        return round(value, 4)
