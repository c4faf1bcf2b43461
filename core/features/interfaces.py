"""
Feature Source Interface - abstract data-access layer for the scoring jobs.

The jobs only read and write user features through this interface, so the
backing store (database, service, JSON snapshot) stays opaque to them.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from core.scorer.models import FeatureBundle, TraitValue


class FeatureSource(ABC):
    """
    Abstract Interface for user feature storage.
    """

    @abstractmethod
    def list_user_ids(self, after: Optional[int], limit: int) -> List[int]:
        """
        Page of user ids in ascending order.

        Args:
            after: Return only ids greater than this (None for the first page)
            limit: Maximum page size
        """
        pass

    @abstractmethod
    def get_bundle(self, user_id: int) -> Optional[FeatureBundle]:
        """Feature bundle of a user, or None if the user does not exist."""
        pass

    @abstractmethod
    def list_candidates(self, viewer_id: int, after: Optional[int], limit: int) -> List[FeatureBundle]:
        """
        Page of candidate bundles for a viewer, ascending by user id.

        Excluded: the viewer, hidden or deleted users, users the viewer has
        blocked and users who have blocked the viewer. after and limit apply
        to the remaining candidates.
        """
        pass

    @abstractmethod
    def snapshot_marker(self) -> Any:
        """
        Value that changes whenever any bundle changes.

        Included in match-score input hashes, since a viewer's scores depend
        on every candidate's features.
        """
        pass

    @abstractmethod
    def get_quiz_trait_contributions(self, user_id: int) -> List[Dict[str, float]]:
        """
        Trait values of every quiz option the user picked, one mapping per answer.

        Example: [{"personality.funny": 2, "personality.nice": -5}, {"personality.funny": 4}]
        """
        pass

    @abstractmethod
    def replace_user_traits(self, user_id: int, traits: Sequence[TraitValue]) -> None:
        """Replace the user's whole trait vector."""
        pass

    @abstractmethod
    def add_rating(self, rater_id: int, target_id: int, ratings: Dict[str, Any]) -> None:
        """
        Record a rating submission.

        Raises:
            ValidationError: if any rating is outside 1..10
            NotFoundError: if either user does not exist
        """
        pass
