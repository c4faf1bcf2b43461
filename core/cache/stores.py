"""Freshness stores - where (job_name, scope) -> input_hash records live.

Every store raises DataUnavailableError when its backing storage is missing
or unreachable, and lets every other error propagate.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, ContextManager, Dict, Optional, Tuple
from urllib.parse import urlparse

from redis import Redis
from redis.exceptions import ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError
from sqlalchemy.exc import OperationalError, ProgrammingError

from core.errors import DataUnavailableError

logger = logging.getLogger(__name__)

# Postgres SQLSTATE for a missing relation
UNDEFINED_TABLE = "42P01"


@dataclass(frozen=True)
class FreshnessRecord:
    job_name: str
    scope: str
    input_hash: str
    computed_at: datetime


class FreshnessStore(ABC):
    """Abstract freshness record store."""

    @abstractmethod
    def get_hash(self, job_name: str, scope: str) -> Optional[str]:
        """Stored input hash for (job_name, scope), or None if never computed."""
        pass

    @abstractmethod
    def upsert(self, record: FreshnessRecord) -> None:
        """Insert or replace the record for (record.job_name, record.scope). Last write wins."""
        pass


class InMemoryFreshnessStore(FreshnessStore):
    def __init__(self):
        self.records: Dict[Tuple[str, str], FreshnessRecord] = {}

    def get_hash(self, job_name: str, scope: str) -> Optional[str]:
        record = self.records.get((job_name, scope))
        return record.input_hash if record else None

    def get(self, job_name: str, scope: str) -> Optional[FreshnessRecord]:
        return self.records.get((job_name, scope))

    def upsert(self, record: FreshnessRecord) -> None:
        self.records[(record.job_name, record.scope)] = record


def _is_missing_table(error: ProgrammingError) -> bool:
    orig = getattr(error, "orig", None)
    if getattr(orig, "pgcode", None) == UNDEFINED_TABLE:
        return True
    message = str(orig or error).lower()
    return "does not exist" in message or "no such table" in message


class SqlFreshnessStore(FreshnessStore):
    """
    Freshness records in the job_freshness table.

    Each call runs in its own unit of work so a freshness failure never
    rolls back the job's own writes. An unreachable database or a missing
    table maps to DataUnavailableError.
    """

    def __init__(self, uow_factory: Optional[Callable[[], ContextManager]] = None):
        if uow_factory is None:
            from database.uow import scoring_uow
            uow_factory = scoring_uow
        self.uow_factory = uow_factory

    def _translate(self, e: Exception) -> Exception:
        if isinstance(e, OperationalError):
            return DataUnavailableError(f"Freshness table unreachable: {e.orig or e}")
        if isinstance(e, ProgrammingError) and _is_missing_table(e):
            return DataUnavailableError(f"Freshness table missing: {e.orig or e}")
        return e

    def get_hash(self, job_name: str, scope: str) -> Optional[str]:
        try:
            with self.uow_factory() as repo:
                return repo.freshness.get_hash(job_name, scope)
        except (OperationalError, ProgrammingError) as e:
            translated = self._translate(e)
            if translated is e:
                raise
            raise translated from e

    def upsert(self, record: FreshnessRecord) -> None:
        try:
            with self.uow_factory() as repo:
                repo.freshness.upsert(record.job_name, record.scope, record.input_hash, record.computed_at)
        except (OperationalError, ProgrammingError) as e:
            translated = self._translate(e)
            if translated is e:
                raise
            raise translated from e


def _sanitize_url(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            sanitized = parsed._replace(
                netloc=f"{parsed.username or ''}:*@{parsed.hostname}:{parsed.port or 6379}"
            )
            return sanitized.geturl()
        return url
    except ValueError:
        return url


class RedisFreshnessStore(FreshnessStore):
    """
    Freshness records as Redis hashes.

    Key: "{prefix}:{job_name}:{scope}", fields input_hash and computed_at.
    Records carry no TTL; retention is managed outside the jobs.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "freshness",
        client: Optional[Redis] = None
    ):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self._redis = client or Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5
        )
        logger.info(f"Freshness store using Redis at {_sanitize_url(redis_url)}")

    def _make_key(self, job_name: str, scope: str) -> str:
        return f"{self.key_prefix}:{job_name}:{scope}"

    def get_hash(self, job_name: str, scope: str) -> Optional[str]:
        try:
            return self._redis.hget(self._make_key(job_name, scope), "input_hash")
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise DataUnavailableError(f"Redis unavailable: {e}") from e

    def upsert(self, record: FreshnessRecord) -> None:
        try:
            self._redis.hset(
                self._make_key(record.job_name, record.scope),
                mapping={
                    "input_hash": record.input_hash,
                    "computed_at": record.computed_at.isoformat(),
                }
            )
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise DataUnavailableError(f"Redis unavailable: {e}") from e

    def get(self, job_name: str, scope: str) -> Optional[FreshnessRecord]:
        try:
            data = self._redis.hgetall(self._make_key(job_name, scope))
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise DataUnavailableError(f"Redis unavailable: {e}") from e
        if not data or "input_hash" not in data:
            return None
        return FreshnessRecord(
            job_name=job_name,
            scope=scope,
            input_hash=data["input_hash"],
            computed_at=datetime.fromisoformat(data["computed_at"]),
        )


def build_freshness_store(freshness_config) -> FreshnessStore:
    """Store for a FreshnessConfig."""
    backend = freshness_config.backend
    if backend == "memory":
        return InMemoryFreshnessStore()
    if backend == "redis":
        return RedisFreshnessStore(
            redis_url=freshness_config.redis_url or "redis://localhost:6379/0",
            key_prefix=freshness_config.key_prefix
        )
    return SqlFreshnessStore()
