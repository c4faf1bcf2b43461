"""
In-process feature source, loadable from a JSON snapshot.

Snapshot format:

    {
      "users": [
        {"id": 1, "interests": ["hiking"], "traits": [{"key": "openness", "value": 3.5, "n": 4}],
         "quiz": {"answers": {"q1": "a"}, "score_vec": [1, 0, 2]},
         "lat": 52.52, "lng": 13.40, "location_text": "Berlin",
         "gender": "f", "birthdate": "1994-05-01", "updated_at": "2026-01-10T12:00:00Z",
         "preferences": {"genders": ["m"], "age_min": 25, "age_max": 40, "distance_km": 50},
         "visible": true, "deleted_at": null, "blocked_user_ids": [7],
         "quiz_contributions": [{"openness": 2, "humor": -1}]}
      ],
      "ratings": [{"rater_id": 2, "target_id": 1, "ratings": {"attractive": 8, "smart": 7}}]
    }
"""
import bisect
import dataclasses
import json
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from core.cache.freshness import hash_key_values
from core.errors import NotFoundError, ValidationError
from core.features.interfaces import FeatureSource
from core.scorer.models import (
    RATING_DIMENSIONS,
    FeatureBundle,
    QuizAnswers,
    RatingSummary,
    TraitValue,
)
from core.scorer.ratings import validate_rating_submission

logger = logging.getLogger(__name__)


class TraitRecord(BaseModel):
    key: str
    value: float
    n: int = 1


class QuizRecord(BaseModel):
    answers: Dict[str, Any] = Field(default_factory=dict)
    score_vec: Optional[List[float]] = None


class RatingSummaryRecord(BaseModel):
    attractive: Optional[float] = None
    smart: Optional[float] = None
    funny: Optional[float] = None
    interesting: Optional[float] = None
    count: int = 0


class PreferencesRecord(BaseModel):
    genders: List[str] = Field(default_factory=list)
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    distance_km: Optional[float] = None


class UserRecord(BaseModel):
    id: int
    interests: List[str] = Field(default_factory=list)
    traits: List[TraitRecord] = Field(default_factory=list)
    quiz: Optional[QuizRecord] = None
    ratings_received: Optional[RatingSummaryRecord] = None
    ratings_given: Optional[RatingSummaryRecord] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    location_text: Optional[str] = None
    gender: Optional[str] = None
    birthdate: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    visible: bool = True
    blocked_user_ids: List[int] = Field(default_factory=list)
    preferences: PreferencesRecord = Field(default_factory=PreferencesRecord)
    quiz_contributions: List[Dict[str, Any]] = Field(default_factory=list)

    def to_bundle(self) -> FeatureBundle:
        quiz = None
        if self.quiz is not None:
            quiz = QuizAnswers(
                answers=dict(self.quiz.answers),
                score_vec=tuple(self.quiz.score_vec) if self.quiz.score_vec else None,
            )
        return FeatureBundle(
            user_id=self.id,
            interests=frozenset(self.interests),
            traits=tuple(TraitValue(key=t.key, value=t.value, n=t.n) for t in self.traits),
            quiz=quiz,
            ratings_received=RatingSummary(**self.ratings_received.model_dump()) if self.ratings_received else None,
            ratings_given=RatingSummary(**self.ratings_given.model_dump()) if self.ratings_given else None,
            lat=self.lat,
            lng=self.lng,
            location_text=self.location_text,
            gender=self.gender,
            birthdate=self.birthdate,
            created_at=self.created_at,
            updated_at=self.updated_at,
            deleted_at=self.deleted_at,
            visible=self.visible,
            blocked_user_ids=frozenset(self.blocked_user_ids),
            preferred_genders=frozenset(self.preferences.genders),
            preferred_age_min=self.preferences.age_min,
            preferred_age_max=self.preferences.age_max,
            preferred_distance_km=self.preferences.distance_km,
        )


class RatingRecord(BaseModel):
    rater_id: int
    target_id: int
    ratings: Dict[str, Any]


class FeatureSnapshot(BaseModel):
    users: List[UserRecord] = Field(default_factory=list)
    ratings: List[RatingRecord] = Field(default_factory=list)


def summarize_ratings(submissions: Sequence[Dict[str, float]]) -> Optional[RatingSummary]:
    """Per-dimension averages over rating submissions; count is the number of submissions."""
    if not submissions:
        return None
    averages = {}
    for dim in RATING_DIMENSIONS:
        values = [s[dim] for s in submissions if s.get(dim) is not None]
        averages[dim] = sum(values) / len(values) if values else None
    return RatingSummary(count=len(submissions), **averages)


class InMemoryFeatureSource(FeatureSource):
    """
    Feature source kept in process memory.

    Rating summaries are recomputed from recorded submissions as soon as a
    user has any; until then the summaries given in the bundle are used.
    """

    def __init__(
        self,
        bundles: Iterable[FeatureBundle] = (),
        contributions: Optional[Dict[int, List[Dict[str, Any]]]] = None
    ):
        self._bundles: Dict[int, FeatureBundle] = {b.user_id: b for b in bundles}
        self._contributions: Dict[int, List[Dict[str, Any]]] = dict(contributions or {})
        self._ratings: List[Tuple[int, int, Dict[str, float]]] = []
        self._sorted_ids: Optional[List[int]] = None
        self._marker: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryFeatureSource":
        try:
            snapshot = FeatureSnapshot.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid feature snapshot: {e}") from e

        source = cls(
            bundles=[u.to_bundle() for u in snapshot.users],
            contributions={u.id: list(u.quiz_contributions) for u in snapshot.users if u.quiz_contributions},
        )
        for rating in snapshot.ratings:
            source.add_rating(rating.rater_id, rating.target_id, rating.ratings)
        logger.info(f"Loaded {len(snapshot.users)} users and {len(snapshot.ratings)} ratings")
        return source

    @classmethod
    def from_file(cls, path: str) -> "InMemoryFeatureSource":
        logger.info(f"Loading features from {path}")
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))

    def _changed(self) -> None:
        self._sorted_ids = None
        self._marker = None

    def _ids(self) -> List[int]:
        if self._sorted_ids is None:
            self._sorted_ids = sorted(self._bundles)
        return self._sorted_ids

    def add_bundle(self, bundle: FeatureBundle) -> None:
        self._bundles[bundle.user_id] = bundle
        self._changed()

    def list_user_ids(self, after: Optional[int], limit: int) -> List[int]:
        ids = self._ids()
        start = bisect.bisect_right(ids, after) if after is not None else 0
        return ids[start:start + max(0, limit)]

    def get_bundle(self, user_id: int) -> Optional[FeatureBundle]:
        return self._bundles.get(user_id)

    def list_candidates(self, viewer_id: int, after: Optional[int], limit: int) -> List[FeatureBundle]:
        viewer = self._bundles.get(viewer_id)
        blocked_by_viewer = viewer.blocked_user_ids if viewer is not None else frozenset()
        ids = self._ids()
        start = bisect.bisect_right(ids, after) if after is not None else 0
        page = []
        for user_id in ids[start:]:
            if len(page) >= limit:
                break
            if user_id == viewer_id or user_id in blocked_by_viewer:
                continue
            candidate = self._bundles[user_id]
            if not candidate.visible or candidate.deleted_at is not None:
                continue
            if viewer_id in candidate.blocked_user_ids:
                continue
            page.append(candidate)
        return page

    def snapshot_marker(self) -> str:
        if self._marker is None:
            self._marker = hash_key_values(
                (str(user_id), dataclasses.asdict(self._bundles[user_id])) for user_id in self._ids()
            )
        return self._marker

    def get_quiz_trait_contributions(self, user_id: int) -> List[Dict[str, Any]]:
        return list(self._contributions.get(user_id, []))

    def set_quiz_trait_contributions(self, user_id: int, contributions: List[Dict[str, Any]]) -> None:
        self._contributions[user_id] = list(contributions)

    def replace_user_traits(self, user_id: int, traits: Sequence[TraitValue]) -> None:
        bundle = self._bundles.get(user_id)
        if bundle is None:
            raise NotFoundError(f"User {user_id} not found")
        self._bundles[user_id] = dataclasses.replace(bundle, traits=tuple(traits))
        self._changed()

    def block_user(self, blocker_id: int, blocked_id: int) -> None:
        bundle = self._bundles.get(blocker_id)
        if bundle is None:
            raise NotFoundError(f"User {blocker_id} not found")
        self._bundles[blocker_id] = dataclasses.replace(
            bundle, blocked_user_ids=bundle.blocked_user_ids | {blocked_id}
        )
        self._changed()

    def add_rating(self, rater_id: int, target_id: int, ratings: Dict[str, Any]) -> None:
        cleaned = validate_rating_submission(ratings)
        for user_id in (rater_id, target_id):
            if user_id not in self._bundles:
                raise NotFoundError(f"User {user_id} not found")
        if rater_id == target_id:
            raise ValidationError("Users cannot rate themselves")

        self._ratings.append((rater_id, target_id, cleaned))

        received = [r for _, t, r in self._ratings if t == target_id]
        given = [r for rr, _, r in self._ratings if rr == rater_id]
        self._bundles[target_id] = dataclasses.replace(
            self._bundles[target_id], ratings_received=summarize_ratings(received)
        )
        self._bundles[rater_id] = dataclasses.replace(
            self._bundles[rater_id], ratings_given=summarize_ratings(given)
        )
        self._changed()
