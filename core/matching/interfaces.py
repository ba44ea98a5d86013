"""
Matching Interfaces Module

This module defines the contract between the Face ID orchestrator and
whatever performs 1:N identification.

The orchestrator only depends on MatchingEngine.find_best_match, so the
linear scan shipped in linear_engine.py can later be swapped for an
approximate-nearest-neighbor index. Any implementation must keep the
acceptance predicate:

1. A candidate is accepted only if similarity > threshold (strict).
2. Equal best similarities are resolved with candidate_rank(), which
   favours recently used profiles.

Usage:
    from core.matching.interfaces import MatchingEngine, MatchCandidate

    candidate = engine.find_best_match(query_descriptor, threshold=0.6)
    print(candidate.profile.owner_id, candidate.similarity)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Tuple

from core.profile_store import BiometricProfile


@dataclass
class MatchCandidate:
    """
    Result of a successful identification.

    Attributes:
        profile: The matched active profile.
        similarity: Score in (threshold, 1.0].
    """

    profile: BiometricProfile
    similarity: float


def candidate_rank(similarity: float, profile: BiometricProfile) -> Tuple[float, bool, datetime, str]:
    """
    Ordering key for candidates; the maximum wins.

    Higher similarity first. On equal similarity a profile that has been
    used beats one that never was, then the more recent last use (or
    creation, for never-used profiles), then the profile id so the
    result is deterministic.
    """
    used = profile.last_used_at is not None
    return (similarity, used, profile.last_activity, profile.id)


class MatchingEngine(ABC):
    """
    Abstract base class for 1:N descriptor identification.

    Typical approach:
        1. Enumerate the active profiles of the profile store
        2. Score each against the query with core.matching.similarity
        3. Keep the best candidate according to candidate_rank()
        4. Accept it only if its similarity is strictly above threshold
    """

    @abstractmethod
    def find_best_match(self, query, threshold: float) -> MatchCandidate:
        """
        Find the active profile most similar to the query descriptor.

        Args:
            query: (D,) descriptor of unknown identity.
            threshold: Minimum similarity, exclusive.

        Returns:
            MatchCandidate for the best accepted profile.

        Raises:
            NoMatchFound: If no active profile scores above threshold.
            MatchingTimeout: If the scan exceeds its budget.
        """
        pass
