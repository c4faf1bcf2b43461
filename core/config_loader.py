import yaml
import os
from typing import Optional, Literal
from pydantic import BaseModel, Field


class DatabaseConfig(BaseModel):
    url: str


class FreshnessConfig(BaseModel):
    """Where freshness records (job_name, scope) -> input_hash are kept."""
    backend: Literal["database", "redis", "memory"] = "database"
    redis_url: Optional[str] = None
    key_prefix: str = "freshness"


class ScoreWeights(BaseModel):
    """Relative weight per operator weight key. Missing keys weigh 0 in the engine."""
    quiz: float = Field(default=0.25, ge=0)
    interests: float = Field(default=0.20, ge=0)
    rating_quality: float = Field(default=0.15, ge=0)
    rating_fit: float = Field(default=0.10, ge=0)
    newness: float = Field(default=0.10, ge=0)
    proximity: float = Field(default=0.20, ge=0)


class ScoringConfig(BaseModel):
    """
    Tunable scoring parameters, fixed for the duration of a job run.
    """
    rating_max: float = 10.0  # Ratings are submitted on a 1-10 scale
    newness_half_life_days: float = 30.0
    default_max_distance_km: float = 100.0
    min_trait_overlap: int = 2
    min_rating_count: int = 3

    # Score used for rating dimensions without enough ratings
    rating_baseline: float = 0.5

    weights: ScoreWeights = Field(default_factory=ScoreWeights)


class MatchScoreJobConfig(BaseModel):
    user_batch_size: int = 100
    candidate_batch_size: int = 500
    pause_ms: int = 50
    top_k: int = 200  # Scores kept per viewer
    # Every viewer is recomputed at least once per interval
    refresh_interval_days: int = Field(default=1, ge=1)
    algorithm_version: str = "v1"


class UserTraitsJobConfig(BaseModel):
    user_batch_size: int = 100
    pause_ms: int = 50
    algorithm_version: str = "v1"


class JobsConfig(BaseModel):
    match_scores: MatchScoreJobConfig = Field(default_factory=MatchScoreJobConfig)
    user_traits: UserTraitsJobConfig = Field(default_factory=UserTraitsJobConfig)
    lock_dir: str = "."  # Directory holding per-job lock files


class FeaturesConfig(BaseModel):
    """JSON file backing the in-process feature source."""
    path: Optional[str] = None


class AppConfig(BaseModel):
    database: DatabaseConfig
    freshness: FreshnessConfig = Field(default_factory=FreshnessConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # If not found at relative path (e.g. running from another directory), try the repo root
    if not os.path.exists(config_path):
        base_dir = os.path.dirname(os.path.abspath(__file__))
        config_path = os.path.join(base_dir, "..", "config.yaml")

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    # Allow env var override for DB URL
    env_db_url = os.environ.get("DATABASE_URL")
    if env_db_url:
        data.setdefault('database', {})
        data['database']['url'] = env_db_url

    # Allow env var override for Redis URL (freshness backend)
    env_redis_url = os.environ.get("REDIS_URL")
    if env_redis_url:
        if not data.get('freshness'):
            data['freshness'] = {}
        data['freshness']['redis_url'] = env_redis_url

    env_features_path = os.environ.get("FEATURES_PATH")
    if env_features_path:
        if not data.get('features'):
            data['features'] = {}
        data['features']['path'] = env_features_path

    # Algorithm versions are part of each job's logical input
    _override_job_setting(data, "match_scores", "algorithm_version", os.environ.get("MATCH_SCORE_ALGO_VERSION"))
    _override_job_setting(data, "user_traits", "algorithm_version", os.environ.get("USER_TRAITS_ALGO_VERSION"))

    return AppConfig(**data)


def _override_job_setting(data: dict, job_key: str, field: str, value: Optional[str]) -> None:
    if not value:
        return
    if not data.get('jobs'):
        data['jobs'] = {}
    if not data['jobs'].get(job_key):
        data['jobs'][job_key] = {}
    data['jobs'][job_key][field] = value
