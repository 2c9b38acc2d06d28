from .service import GroupCandidateFinder

__all__ = ["GroupCandidateFinder"]
