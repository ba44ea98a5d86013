"""
Linear Scan Engine: exhaustive 1:N identification over active profiles.

O(N) in the number of active profiles, which is fine at club scale. The
scan is bounded twice so a login request cannot turn into an unbounded
latency endpoint:
- max_candidates: refuse to start when more profiles are active
- scan_timeout_sec: abort once the deadline passes mid-scan
"""

import logging
import time
from typing import Optional

from core.errors import MatchingTimeout, NoMatchFound
from core.matching.interfaces import MatchCandidate, MatchingEngine, candidate_rank
from core.matching.similarity import similarity
from core.profile_store import ProfileStore

logger = logging.getLogger(__name__)


class LinearScanEngine(MatchingEngine):
    """
    Compare the query against every active profile and keep the best.

    Args:
        store: ProfileStore providing list_active() / count_active().
        max_candidates: Upper bound on active profiles scanned (None = unbounded).
        scan_timeout_sec: Deadline for one scan in seconds (None = unbounded).
    """

    def __init__(
        self,
        store: ProfileStore,
        max_candidates: Optional[int] = None,
        scan_timeout_sec: Optional[float] = None,
    ):
        self.store = store
        self.max_candidates = max_candidates
        self.scan_timeout_sec = scan_timeout_sec

    @classmethod
    def from_config(cls, store: ProfileStore, config: dict) -> "LinearScanEngine":
        return cls(
            store,
            max_candidates=config.get("max_candidates"),
            scan_timeout_sec=config.get("scan_timeout_sec"),
        )

    def find_best_match(self, query, threshold: float) -> MatchCandidate:
        start = time.monotonic()

        if self.max_candidates is not None:
            n_active = self.store.count_active()
            if n_active > self.max_candidates:
                logger.error(
                    f"Refusing 1:N scan: {n_active} active profiles exceed "
                    f"max_candidates={self.max_candidates}"
                )
                raise MatchingTimeout(f"{n_active} active profiles exceed the scan limit")

        profiles = self.store.list_active()
        deadline = start + self.scan_timeout_sec if self.scan_timeout_sec is not None else None

        best: Optional[MatchCandidate] = None
        best_rank = None

        for profile in profiles:
            if deadline is not None and time.monotonic() > deadline:
                logger.error(f"1:N scan exceeded {self.scan_timeout_sec}s after {len(profiles)} candidates")
                raise MatchingTimeout(f"scan exceeded {self.scan_timeout_sec}s")

            score = similarity(query, profile.descriptor)
            if score <= threshold:
                continue

            rank = candidate_rank(score, profile)
            if best_rank is None or rank > best_rank:
                best = MatchCandidate(profile=profile, similarity=score)
                best_rank = rank

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(f"Scanned {len(profiles)} active profiles in {elapsed_ms:.1f}ms")

        if best is None:
            raise NoMatchFound()

        return best
