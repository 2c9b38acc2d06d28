"""
Pure suggestion pipeline.

Availability, scoring, grouping and matching operate on frozen snapshots
only; generation composes them for a single user.
"""

__all__ = ["availability", "grouping", "matching", "scoring", "generation"]
