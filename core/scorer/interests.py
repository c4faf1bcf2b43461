"""
Interest overlap scoring.
"""

from dataclasses import dataclass, field
from typing import AbstractSet, List, Optional

MAX_REPORTED_MATCHES = 5


@dataclass(frozen=True)
class InterestOverlap:
    """Jaccard overlap of two tag sets. overlap is None when either set is empty."""
    overlap: Optional[float]
    matches: List[str] = field(default_factory=list)
    intersection: int = 0
    viewer_count: int = 0
    candidate_count: int = 0


def interest_overlap(viewer: AbstractSet[str], candidate: AbstractSet[str]) -> InterestOverlap:
    viewer_count = len(viewer)
    candidate_count = len(candidate)
    if not viewer_count or not candidate_count:
        return InterestOverlap(overlap=None, viewer_count=viewer_count, candidate_count=candidate_count)

    shared = viewer & candidate
    union = viewer | candidate
    return InterestOverlap(
        overlap=len(shared) / len(union),
        matches=sorted(shared)[:MAX_REPORTED_MATCHES],
        intersection=len(shared),
        viewer_count=viewer_count,
        candidate_count=candidate_count,
    )


def cheap_interest_bound(viewer: AbstractSet[str], candidate: AbstractSet[str]) -> float:
    """
    Upper bound on the Jaccard overlap from set sizes alone.

    |A & B| <= min(|A|, |B|) and |A | B| >= max(|A|, |B|), so the ratio
    never understates the true overlap.
    """
    a, b = len(viewer), len(candidate)
    return min(a, b) / max(1, a, b)
