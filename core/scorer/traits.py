"""
Trait similarity - cosine over confidence-weighted shared trait dimensions.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from core.scorer.geo import clamp
from core.scorer.models import TraitValue
from core.scorer.vectors import cosine_similarity, to_unit_interval

# A trait backed by this many contributions is fully trusted
CONFIDENCE_NORM = 5.0


@dataclass(frozen=True)
class TraitSimilarity:
    value: Optional[float]
    coverage: float = 0.0
    common_count: int = 0


def trait_confidence(n: int) -> float:
    return clamp(n / CONFIDENCE_NORM)


def trait_similarity(
    viewer_traits: Sequence[TraitValue],
    candidate_traits: Sequence[TraitValue]
) -> TraitSimilarity:
    """
    Compare two trait vectors over the dimensions both users have.

    Each value is scaled by its confidence min(1, n/5). The cosine of the
    aligned vectors is mapped from [-1, 1] to [0, 1], then multiplied by
    sqrt(coverage), where coverage = common / min(trait counts). The square
    root keeps the coverage penalty monotonic without punishing users for
    having many traits.

    Returns value None with common_count 0 when nothing is shared.
    """
    if not viewer_traits or not candidate_traits:
        return TraitSimilarity(value=None)

    viewer_map = {t.key: t for t in viewer_traits}
    candidate_map = {t.key: t for t in candidate_traits}

    viewer_vec = []
    candidate_vec = []
    for key, viewer_trait in viewer_map.items():
        candidate_trait = candidate_map.get(key)
        if candidate_trait is None:
            continue
        viewer_vec.append(viewer_trait.value * trait_confidence(viewer_trait.n))
        candidate_vec.append(candidate_trait.value * trait_confidence(candidate_trait.n))

    common = len(viewer_vec)
    if common == 0:
        return TraitSimilarity(value=None)

    normalized = to_unit_interval(cosine_similarity(viewer_vec, candidate_vec))
    coverage = common / min(len(viewer_map), len(candidate_map))
    return TraitSimilarity(
        value=clamp(normalized * math.sqrt(coverage)),
        coverage=coverage,
        common_count=common,
    )
