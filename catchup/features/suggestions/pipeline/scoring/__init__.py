"""
Scoring package.

Recency priority for individual contacts and shared-context affinity for
candidate groups.
"""

from .recency import TARGET_INTERVAL_DAYS, RecencyScorer
from .shared_context import SharedContextScorer

__all__ = ["RecencyScorer", "SharedContextScorer", "TARGET_INTERVAL_DAYS"]
