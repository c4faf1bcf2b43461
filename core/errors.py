"""
Error taxonomy shared by the scoring engine, freshness cache and job driver.
"""


class MatchScoutError(Exception):
    """Base exception for MatchScout errors."""
    pass


class ValidationError(MatchScoutError):
    """Raised for malformed or out-of-range input. Never retried."""
    pass


class NotFoundError(MatchScoutError):
    """Raised when a referenced entity does not exist."""
    pass


class DataUnavailableError(MatchScoutError):
    """Raised by a freshness store that is missing or unreachable.

    The freshness cache absorbs this error: reads fail open (stale) and
    writes become no-ops.
    """
    pass


class JobDependencyError(MatchScoutError):
    """Raised for unknown jobs, broken dependency graphs, or bad run orders."""
    pass


class JobLockedError(MatchScoutError):
    """Raised when another process already runs the same job."""
    pass
