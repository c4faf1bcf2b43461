from database.repositories.base import BaseRepository
from database.repositories.freshness import FreshnessRepository
from database.repositories.match_score import MatchScoreRepository
from database.repositories.job_run import JobRunRepository

__all__ = [
    'BaseRepository',
    'FreshnessRepository',
    'MatchScoreRepository',
    'JobRunRepository',
]
