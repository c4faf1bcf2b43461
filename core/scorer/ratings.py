"""
Rating scoring - quality of received ratings and fit between rating profiles.
"""

import math
import numbers
from typing import Any, Dict, Optional, List

from core.errors import ValidationError
from core.scorer.models import RATING_DIMENSIONS, RatingSummary
from core.scorer.vectors import cosine_similarity, normalize_rating, to_centered_vector, to_unit_interval

RATING_MIN = 1
RATING_MAX = 10


def validate_rating_submission(ratings: Dict[str, Any]) -> Dict[str, int]:
    """
    Validate a rating submission.

    Every dimension present must be a number in 1..10. At least one
    dimension is required and unknown dimensions are rejected.

    Raises:
        ValidationError: if the submission is malformed or out of range
    """
    if not ratings:
        raise ValidationError("Rating submission is empty")

    cleaned = {}
    for key, value in ratings.items():
        if key not in RATING_DIMENSIONS:
            raise ValidationError(f"Unknown rating dimension '{key}'")
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
            raise ValidationError(f"Rating '{key}' must be a number, got {value!r}")
        if value < RATING_MIN or value > RATING_MAX:
            raise ValidationError(f"Rating '{key}' must be between {RATING_MIN} and {RATING_MAX}, got {value}")
        cleaned[key] = value

    if not cleaned:
        raise ValidationError("Rating submission has no values")
    return cleaned


def average_rating(summary: RatingSummary) -> Optional[float]:
    present = [v for v in summary.values() if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def rating_vector(summary: Optional[RatingSummary], rating_max: float) -> Optional[List[float]]:
    """Normalized four-dimension vector. Missing dimensions become 0; all missing yields None."""
    if summary is None:
        return None
    values = summary.values()
    if all(v is None for v in values):
        return None
    return [normalize_rating(v, rating_max) or 0.0 for v in values]


def rating_quality(summary: Optional[RatingSummary], rating_max: float, min_rating_count: int) -> Optional[float]:
    """
    Average received rating normalized by rating_max.

    Summaries backed by fewer than min_rating_count ratings are unreliable
    and reported as absent (None).
    """
    if summary is None or summary.count < min_rating_count:
        return None
    avg = average_rating(summary)
    if avg is None:
        return None
    return normalize_rating(avg, rating_max)


def rating_fit(
    viewer_given: Optional[RatingSummary],
    candidate_received: Optional[RatingSummary],
    rating_max: float,
    min_rating_count: int
) -> Optional[float]:
    """
    Similarity between what the viewer rates highly and how the candidate is rated.

    Both profiles are mean-centred so only their shape matters. A flat
    profile carries no preference and is absent, as is a candidate profile
    below min_rating_count.
    """
    if candidate_received is None or candidate_received.count < min_rating_count:
        return None

    viewer_vec = to_centered_vector(rating_vector(viewer_given, rating_max))
    candidate_vec = to_centered_vector(rating_vector(candidate_received, rating_max))
    if viewer_vec is None or candidate_vec is None:
        return None

    return to_unit_interval(cosine_similarity(viewer_vec, candidate_vec))
