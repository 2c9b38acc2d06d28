from .service import Match, MatchCandidate, MatchingEngine, extract_keywords

__all__ = ["Match", "MatchCandidate", "MatchingEngine", "extract_keywords"]
