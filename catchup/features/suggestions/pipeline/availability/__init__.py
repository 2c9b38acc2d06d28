from .service import AvailabilityResolver, complement_intervals, intersect_intervals, merge_intervals

__all__ = ["AvailabilityResolver", "complement_intervals", "intersect_intervals", "merge_intervals"]
