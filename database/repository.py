import logging

from sqlalchemy.orm import Session

from database.repositories import FreshnessRepository, JobRunRepository, MatchScoreRepository

logger = logging.getLogger(__name__)


class ScoringRepository:
    """
    Repository facade over one Session.

    Groups the per-table repositories so a unit of work can touch scores,
    freshness records and run bookkeeping in a single transaction.
    """

    def __init__(self, db: Session):
        self.db = db
        self.match_scores = MatchScoreRepository(db)
        self.freshness = FreshnessRepository(db)
        self.job_runs = JobRunRepository(db)

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
