import logging
from typing import List, Optional, Sequence
from datetime import datetime, timezone

from sqlalchemy import select, delete, func

from database.models import MatchScore
from database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)

COMPONENT_COLUMNS = (
    'score_quiz',
    'score_interests',
    'score_ratings_quality',
    'score_ratings_fit',
    'score_new',
    'score_nearby',
)


class MatchScoreRepository(BaseRepository):
    def get_scores(
        self,
        user_id: int,
        algorithm_version: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[MatchScore]:
        """Scores for a viewer, best first. Defaults to the latest written version."""
        if algorithm_version is None:
            algorithm_version = self.get_latest_version(user_id)
            if algorithm_version is None:
                return []

        stmt = select(MatchScore).where(
            MatchScore.user_id == user_id,
            MatchScore.algorithm_version == algorithm_version
        ).order_by(MatchScore.score.desc(), MatchScore.candidate_user_id.asc())
        if limit:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def get_latest_version(self, user_id: int) -> Optional[str]:
        stmt = select(MatchScore.algorithm_version).where(
            MatchScore.user_id == user_id
        ).order_by(MatchScore.scored_at.desc(), MatchScore.id.desc()).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def count_for_user(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(MatchScore).where(MatchScore.user_id == user_id)
        return self.db.execute(stmt).scalar_one()

    def save_scores(self, user_id: int, algorithm_version: str, rows: Sequence[dict], scored_at: Optional[datetime] = None) -> int:
        """
        Upsert a viewer's scores under algorithm_version.

        Each row holds candidate_user_id, score, the component columns,
        distance_km, reasons and tier.
        """
        if not rows:
            return 0
        scored_at = scored_at or datetime.now(timezone.utc)

        for row in rows:
            values = {
                'user_id': user_id,
                'candidate_user_id': row['candidate_user_id'],
                'algorithm_version': algorithm_version,
                'score': row['score'],
                'distance_km': row.get('distance_km'),
                'reasons': row.get('reasons') or {},
                'tier': row.get('tier', 'A'),
                'scored_at': scored_at,
            }
            for column in COMPONENT_COLUMNS:
                values[column] = row.get(column)

            stmt = self._insert(MatchScore).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=['user_id', 'candidate_user_id', 'algorithm_version'],
                set_={k: v for k, v in values.items() if k not in ('user_id', 'candidate_user_id', 'algorithm_version')}
            )
            self.db.execute(stmt)
        return len(rows)

    def delete_stale(self, user_id: int, algorithm_version: str, keep_candidate_ids: Sequence[int]) -> int:
        """Delete the viewer's rows from other versions, plus same-version rows for dropped candidates."""
        result = self.db.execute(
            delete(MatchScore).where(
                MatchScore.user_id == user_id,
                MatchScore.algorithm_version != algorithm_version
            )
        )
        deleted = result.rowcount or 0

        if keep_candidate_ids:
            result = self.db.execute(
                delete(MatchScore).where(
                    MatchScore.user_id == user_id,
                    MatchScore.algorithm_version == algorithm_version,
                    MatchScore.candidate_user_id.not_in(list(keep_candidate_ids))
                )
            )
            deleted += result.rowcount or 0

        if deleted:
            logger.debug(f"Deleted {deleted} stale match scores for user {user_id}")
        return deleted
