"""
Matching Module for Face ID

Components:
    - similarity: cosine similarity of two descriptors, mapped to [0, 1]
    - interfaces: MatchingEngine contract and candidate ordering
    - linear_engine: exhaustive scan over the active profiles

Usage:
    from core.matching import LinearScanEngine, similarity
"""

from core.matching.similarity import similarity
from core.matching.interfaces import MatchCandidate, MatchingEngine, candidate_rank
from core.matching.linear_engine import LinearScanEngine

__all__ = [
    "similarity",
    "MatchCandidate",
    "MatchingEngine",
    "candidate_rank",
    "LinearScanEngine",
]
