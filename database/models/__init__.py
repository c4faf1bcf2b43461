from .base import Base, JSONType
from .freshness import JobFreshness
from .match_score import MatchScore
from .job_run import JobRun

__all__ = [
    'Base',
    'JSONType',
    'JobFreshness',
    'MatchScore',
    'JobRun',
]
