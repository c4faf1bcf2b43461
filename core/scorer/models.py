#!/usr/bin/env python3
"""
Scoring Models - Data structures for feature bundles, contexts and results.

Everything here is immutable: a bundle is read-only to the engine, and a
MatchContext is built once per (viewer, candidate) pair and never mutated.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from core.config_loader import ScoringConfig
from core.errors import ValidationError

RATING_DIMENSIONS = ('attractive', 'smart', 'funny', 'interesting')


@dataclass(frozen=True)
class TraitValue:
    """Aggregated value for one trait dimension. n is the number of contributions."""
    key: str
    value: float
    n: int = 1


@dataclass(frozen=True)
class QuizAnswers:
    """Legacy quiz data: question key -> answer, plus an optional numeric score vector."""
    answers: Mapping[str, Any] = field(default_factory=dict)
    score_vec: Optional[Tuple[float, ...]] = None


@dataclass(frozen=True)
class RatingSummary:
    """Average of each rating dimension plus the number of ratings behind it."""
    attractive: Optional[float] = None
    smart: Optional[float] = None
    funny: Optional[float] = None
    interesting: Optional[float] = None
    count: int = 0

    def values(self) -> Tuple[Optional[float], ...]:
        return tuple(getattr(self, dim) for dim in RATING_DIMENSIONS)


@dataclass(frozen=True)
class FeatureBundle:
    """
    Features of one user as seen by the scoring engine.

    Only user_id is required. The preferred_* fields are the user's own
    partner preferences and only matter when the user is the viewer.
    blocked_user_ids holds the users this user has blocked.
    """
    user_id: int
    interests: FrozenSet[str] = frozenset()
    traits: Tuple[TraitValue, ...] = ()
    quiz: Optional[QuizAnswers] = None
    ratings_received: Optional[RatingSummary] = None
    ratings_given: Optional[RatingSummary] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    location_text: Optional[str] = None
    gender: Optional[str] = None
    birthdate: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    visible: bool = True
    blocked_user_ids: FrozenSet[int] = frozenset()

    preferred_genders: FrozenSet[str] = frozenset()
    preferred_age_min: Optional[int] = None
    preferred_age_max: Optional[int] = None
    preferred_distance_km: Optional[float] = None

    @property
    def trait_count(self) -> int:
        return len(self.traits)


@dataclass(frozen=True)
class Preferences:
    """Tunable scoring parameters. Immutable for the duration of a job run."""
    rating_max: float = 10.0
    newness_half_life_days: float = 30.0
    default_max_distance_km: float = 100.0
    min_trait_overlap: int = 2
    min_rating_count: int = 3
    rating_baseline: float = 0.5
    weights: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        if self.rating_max <= 0:
            raise ValidationError(f"rating_max must be positive, got {self.rating_max}")
        if self.newness_half_life_days <= 0:
            raise ValidationError(f"newness_half_life_days must be positive, got {self.newness_half_life_days}")
        if self.default_max_distance_km <= 0:
            raise ValidationError(f"default_max_distance_km must be positive, got {self.default_max_distance_km}")
        if self.min_trait_overlap < 0 or self.min_rating_count < 0:
            raise ValidationError("min_trait_overlap and min_rating_count must be non-negative")
        if not 0.0 <= self.rating_baseline <= 1.0:
            raise ValidationError(f"rating_baseline must be in [0, 1], got {self.rating_baseline}")
        for key, weight in self.weights.items():
            if weight is None or weight < 0:
                raise ValidationError(f"Weight for '{key}' must be non-negative, got {weight}")

    def weight(self, weight_key: str) -> float:
        return float(self.weights.get(weight_key, 0.0))

    @classmethod
    def from_config(cls, config: ScoringConfig) -> "Preferences":
        return cls(
            rating_max=config.rating_max,
            newness_half_life_days=config.newness_half_life_days,
            default_max_distance_km=config.default_max_distance_km,
            min_trait_overlap=config.min_trait_overlap,
            min_rating_count=config.min_rating_count,
            rating_baseline=config.rating_baseline,
            weights=dict(config.weights.model_dump()),
        )

    def fingerprint(self) -> Dict[str, Any]:
        """Plain-dict form used in job input hashes."""
        data = dataclasses.asdict(self)
        data['weights'] = dict(sorted(self.weights.items()))
        return data


@dataclass(frozen=True)
class MatchContext:
    viewer: FeatureBundle
    candidate: FeatureBundle
    prefs: Preferences
    now: datetime


@dataclass(frozen=True)
class ViewerContext:
    """The viewer half of a MatchContext, reused across all of the viewer's candidates."""
    viewer: FeatureBundle
    prefs: Preferences
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def with_candidate(self, candidate: FeatureBundle) -> MatchContext:
        return MatchContext(viewer=self.viewer, candidate=candidate, prefs=self.prefs, now=self.now)


@dataclass(frozen=True)
class OperatorResult:
    """
    Tri-state operator output: value is None when the dimension is absent.

    Absence collapses to the operator's documented neutral score only when a
    plain number is needed.
    """
    value: Optional[float]
    neutral: float = 0.0
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_absent(self) -> bool:
        return self.value is None

    @property
    def score(self) -> float:
        return self.neutral if self.value is None else self.value

    @classmethod
    def computed(cls, value: float, meta: Optional[Dict[str, Any]] = None) -> "OperatorResult":
        return cls(value=value, meta=meta or {})

    @classmethod
    def absent(cls, neutral: float, meta: Optional[Dict[str, Any]] = None) -> "OperatorResult":
        return cls(value=None, neutral=neutral, meta=meta or {})


@dataclass
class ScoreResult:
    """Scored (viewer, candidate) pair."""
    candidate_id: int
    final_score: float = 0.0
    components: Dict[str, float] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    compliance: Dict[str, bool] = field(default_factory=dict)
    tier: str = "A"
    distance_km: Optional[float] = None
