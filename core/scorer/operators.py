"""
Scoring Operators - one pluggable unit per scoring dimension.

Each operator exposes score(ctx), which never raises for missing feature
data, and optionally cheap(ctx), an upper bound that is never smaller than
score(ctx).score for the same context. Operators are stateless.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from core.scorer.geo import clamp, distance_km
from core.scorer.interests import cheap_interest_bound, interest_overlap
from core.scorer.models import MatchContext, OperatorResult
from core.scorer.quiz import quiz_similarity
from core.scorer.ratings import rating_fit, rating_quality
from core.scorer.stats import age_in_days, recency_decay
from core.scorer.traits import trait_similarity

INTERESTS_NEUTRAL = 0.1
TRAITS_NEUTRAL = 0.5
SAME_LOCATION_TEXT_SCORE = 0.25


class ScoringOperator(ABC):
    """
    Abstract scoring operator.

    key identifies the operator, weight_key selects its weight in
    Preferences.weights and component_key names its output in ScoreResult.
    """
    key: str = ""
    weight_key: str = ""
    component_key: str = ""

    def cheap(self, ctx: MatchContext) -> Optional[float]:
        """Upper bound on score(ctx).score, or None when no cheap estimate exists."""
        return None

    @abstractmethod
    def score(self, ctx: MatchContext) -> OperatorResult:
        pass


class TraitsOperator(ScoringOperator):
    """
    Personality similarity.

    Trait vectors are used when at least prefs.min_trait_overlap dimensions
    are shared. Otherwise the legacy quiz similarity is used, and when that
    is unavailable too the neutral 0.5 is emitted. meta['source'] tells the
    three outcomes apart.
    """
    key = "traits"
    weight_key = "quiz"
    component_key = "score_quiz"

    def cheap(self, ctx: MatchContext) -> Optional[float]:
        has_traits = bool(ctx.viewer.traits) and bool(ctx.candidate.traits)
        has_quiz = ctx.viewer.quiz is not None and ctx.candidate.quiz is not None
        if not has_traits and not has_quiz:
            return TRAITS_NEUTRAL
        return 1.0

    def score(self, ctx: MatchContext) -> OperatorResult:
        traits = trait_similarity(ctx.viewer.traits, ctx.candidate.traits)
        meta = {
            'trait_sim': None,
            'trait_coverage': traits.coverage,
            'trait_common_count': traits.common_count,
            'quiz_sim_legacy': None,
        }

        if traits.value is not None and traits.common_count >= ctx.prefs.min_trait_overlap:
            meta['source'] = 'traits'
            meta['trait_sim'] = traits.value
            return OperatorResult.computed(traits.value, meta)

        quiz_sim = quiz_similarity(ctx.viewer.quiz, ctx.candidate.quiz)
        if quiz_sim is not None:
            meta['source'] = 'quiz'
            meta['quiz_sim_legacy'] = quiz_sim
            return OperatorResult.computed(quiz_sim, meta)

        meta['source'] = 'neutral'
        return OperatorResult.absent(TRAITS_NEUTRAL, meta)


class InterestsOperator(ScoringOperator):
    """Jaccard overlap of interest tags. Either side empty scores the neutral 0.1."""
    key = "interests"
    weight_key = "interests"
    component_key = "score_interests"

    def cheap(self, ctx: MatchContext) -> Optional[float]:
        if not ctx.viewer.interests or not ctx.candidate.interests:
            return INTERESTS_NEUTRAL
        return cheap_interest_bound(ctx.viewer.interests, ctx.candidate.interests)

    def score(self, ctx: MatchContext) -> OperatorResult:
        result = interest_overlap(ctx.viewer.interests, ctx.candidate.interests)
        meta = {
            'matches': result.matches,
            'intersection': result.intersection,
            'viewer_count': result.viewer_count,
            'candidate_count': result.candidate_count,
        }
        if result.overlap is None:
            return OperatorResult.absent(INTERESTS_NEUTRAL, meta)
        return OperatorResult.computed(result.overlap, meta)


class RatingQualityOperator(ScoringOperator):
    key = "rating_quality"
    weight_key = "rating_quality"
    component_key = "score_ratings_quality"

    def cheap(self, ctx: MatchContext) -> Optional[float]:
        received = ctx.candidate.ratings_received
        if received is None or received.count < ctx.prefs.min_rating_count:
            return ctx.prefs.rating_baseline
        return 1.0

    def score(self, ctx: MatchContext) -> OperatorResult:
        received = ctx.candidate.ratings_received
        meta = {'rating_count': received.count if received else 0}
        value = rating_quality(received, ctx.prefs.rating_max, ctx.prefs.min_rating_count)
        if value is None:
            return OperatorResult.absent(ctx.prefs.rating_baseline, meta)
        return OperatorResult.computed(value, meta)


class RatingFitOperator(ScoringOperator):
    key = "rating_fit"
    weight_key = "rating_fit"
    component_key = "score_ratings_fit"

    def cheap(self, ctx: MatchContext) -> Optional[float]:
        received = ctx.candidate.ratings_received
        if ctx.viewer.ratings_given is None or received is None or received.count < ctx.prefs.min_rating_count:
            return ctx.prefs.rating_baseline
        return 1.0

    def score(self, ctx: MatchContext) -> OperatorResult:
        value = rating_fit(
            ctx.viewer.ratings_given,
            ctx.candidate.ratings_received,
            ctx.prefs.rating_max,
            ctx.prefs.min_rating_count
        )
        if value is None:
            return OperatorResult.absent(ctx.prefs.rating_baseline)
        return OperatorResult.computed(value)


class NewnessOperator(ScoringOperator):
    """Recency of the candidate's profile activity. No timestamps scores 0."""
    key = "newness"
    weight_key = "newness"
    component_key = "score_new"

    def score(self, ctx: MatchContext) -> OperatorResult:
        timestamp = ctx.candidate.updated_at or ctx.candidate.created_at
        age_days = age_in_days(timestamp, ctx.now)
        if age_days is None:
            return OperatorResult.absent(0.0)
        value = recency_decay(age_days, ctx.prefs.newness_half_life_days)
        return OperatorResult.computed(value, {'age_days': round(max(age_days, 0.0), 1)})


class ProximityOperator(ScoringOperator):
    """
    Linear falloff of distance within the viewer's radius.

    Without coordinates on both sides, an identical location text scores a
    small constant.
    """
    key = "proximity"
    weight_key = "proximity"
    component_key = "score_nearby"

    def score(self, ctx: MatchContext) -> OperatorResult:
        viewer, candidate = ctx.viewer, ctx.candidate
        distance = distance_km(viewer.lat, viewer.lng, candidate.lat, candidate.lng)
        if distance is not None:
            radius = ctx.prefs.default_max_distance_km
            if viewer.preferred_distance_km and viewer.preferred_distance_km > 0:
                radius = viewer.preferred_distance_km
            return OperatorResult.computed(
                clamp(1.0 - distance / radius),
                {'distance_km': round(distance, 1), 'radius_km': radius, 'source': 'geo'}
            )

        viewer_text = (viewer.location_text or "").strip().lower()
        candidate_text = (candidate.location_text or "").strip().lower()
        if viewer_text and viewer_text == candidate_text:
            return OperatorResult.computed(SAME_LOCATION_TEXT_SCORE, {'distance_km': None, 'source': 'text'})

        return OperatorResult.absent(0.0, {'distance_km': None, 'source': 'none'})


SCORING_OPERATORS: Tuple[ScoringOperator, ...] = (
    TraitsOperator(),
    InterestsOperator(),
    RatingQualityOperator(),
    RatingFitOperator(),
    NewnessOperator(),
    ProximityOperator(),
)

OPERATORS_BY_KEY: Dict[str, ScoringOperator] = {op.key: op for op in SCORING_OPERATORS}
