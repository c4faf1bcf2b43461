"""
Legacy quiz similarity, used when trait data is missing or too sparse.
"""

from typing import Optional

from core.scorer.models import QuizAnswers
from core.scorer.vectors import cosine_similarity, to_unit_interval


def answers_similarity(viewer: QuizAnswers, candidate: QuizAnswers) -> Optional[float]:
    """Fraction of shared question keys answered identically. None if no key is shared."""
    shared = [key for key in viewer.answers if key in candidate.answers]
    if not shared:
        return None
    matches = sum(1 for key in shared if viewer.answers[key] == candidate.answers[key])
    return matches / len(shared)


def quiz_similarity(viewer: Optional[QuizAnswers], candidate: Optional[QuizAnswers]) -> Optional[float]:
    """
    Similarity of two legacy quiz results in [0, 1].

    Equal-length numeric score vectors are compared by cosine (mapped to
    [0, 1]); otherwise the raw answers are compared key by key. Returns None
    when nothing is comparable.
    """
    if viewer is None or candidate is None:
        return None

    vec_a, vec_b = viewer.score_vec, candidate.score_vec
    if vec_a and vec_b and len(vec_a) == len(vec_b):
        return to_unit_interval(cosine_similarity(vec_a, vec_b))

    return answers_similarity(viewer, candidate)
