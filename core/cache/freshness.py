"""Freshness Cache - skip units of work whose inputs have not changed.

A unit of work is keyed by (job_name, scope), e.g. ("match-scores", "user:42").
After a successful computation the job marks the scope with a hash of its
logical inputs; the next run recomputes only scopes whose hash differs.
"""
import hashlib
import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Tuple

from core.cache.stores import FreshnessRecord, FreshnessStore
from core.errors import DataUnavailableError

logger = logging.getLogger(__name__)

# Either switch set to "1" forces a full recompute
FULL_RUN_ENV_VARS = ("JOB_FULL", "JOB_FORCE")

# Integers beyond this lose precision as JSON numbers in most consumers
MAX_SAFE_INTEGER = 2 ** 53 - 1


def is_full_run(environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return any(env.get(name) == "1" for name in FULL_RUN_ENV_VARS)


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def normalize_value(value: Any) -> Any:
    """
    Canonical JSON-ready form of a hash input.

    Datetimes become UTC ISO strings with millisecond precision, dates become
    ISO dates, large integers and Decimals become decimal strings, integral
    floats become ints, sets become sorted lists. None stays None.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, datetime):
        return _format_datetime(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, int):
        return str(value) if abs(value) > MAX_SAFE_INTEGER else value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, float):
        # 10.0 and 10 hash the same
        if value.is_integer():
            return normalize_value(int(value))
        return value
    if isinstance(value, Mapping):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted((normalize_value(v) for v in value), key=lambda v: json.dumps(v, sort_keys=True))
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    raise TypeError(f"Cannot hash value of type {type(value).__name__}")


def hash_key_values(entries: Iterable[Tuple[str, Any]]) -> str:
    """SHA-256 hex digest of the normalized [key, value] pairs, in the given order."""
    payload = json.dumps(
        [[key, normalize_value(value)] for key, value in entries],
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class FreshnessCache:
    """
    Decides whether a (job_name, scope) unit of work must be recomputed.

    A missing or unreachable store never blocks a job: is_fresh() then
    reports stale and mark_computed() does nothing. Any other store error
    propagates.
    """

    def __init__(self, store: FreshnessStore, force: Optional[bool] = None):
        self.store = store
        self.force = is_full_run() if force is None else force
        self._degraded_logged = False

    def _log_degraded(self, e: Exception) -> None:
        if not self._degraded_logged:
            logger.warning(f"Freshness store unavailable, recomputing everything: {e}")
            self._degraded_logged = True

    def is_fresh(self, job_name: str, scope: str, input_hash: str) -> bool:
        if self.force:
            return False
        try:
            stored = self.store.get_hash(job_name, scope)
        except DataUnavailableError as e:
            self._log_degraded(e)
            return False
        return stored is not None and stored == input_hash

    def mark_computed(
        self,
        job_name: str,
        scope: str,
        input_hash: str,
        computed_at: Optional[datetime] = None
    ) -> None:
        record = FreshnessRecord(
            job_name=job_name,
            scope=scope,
            input_hash=input_hash,
            computed_at=computed_at or datetime.now(timezone.utc),
        )
        try:
            self.store.upsert(record)
        except DataUnavailableError as e:
            self._log_degraded(e)

    def forced(self) -> "FreshnessCache":
        """Same store, but every scope reports stale."""
        return FreshnessCache(self.store, force=True)


def user_scope(user_id: Any) -> str:
    return f"user:{user_id}"
