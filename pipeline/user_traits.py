"""Build user traits job.

Aggregates each user's trait vector from the trait values of the quiz
options they picked: every contribution is clamped to [-10, 10], the trait
value is the mean and n the number of contributions.
"""

import math
import time
import logging
import numbers
from typing import Any, Dict, Iterable, List, Optional

from core.app_context import AppContext
from core.cache.freshness import hash_key_values, user_scope
from core.errors import NotFoundError
from core.scorer.geo import clamp
from core.scorer.models import TraitValue
from pipeline.models import JobFlags, JobResult

logger = logging.getLogger(__name__)

JOB_NAME = "build-user-traits"

TRAIT_VALUE_LIMIT = 10.0


def aggregate_trait_contributions(contributions: Iterable[Dict[str, Any]]) -> List[TraitValue]:
    """Mean of the clamped contributions per trait key, sorted by key. Non-numeric values are ignored."""
    sums: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    for answer in contributions:
        for key, value in (answer or {}).items():
            if isinstance(value, bool) or not isinstance(value, numbers.Real) or not math.isfinite(value):
                continue
            clamped = clamp(float(value), -TRAIT_VALUE_LIMIT, TRAIT_VALUE_LIMIT)
            sums[key] = sums.get(key, 0.0) + clamped
            counts[key] = counts.get(key, 0) + 1

    return [
        TraitValue(key=key, value=sums[key] / counts[key], n=counts[key])
        for key in sorted(sums)
    ]


def traits_input_hash(algorithm_version: str, contributions: List[Dict[str, Any]], traits: Iterable[TraitValue]) -> str:
    return hash_key_values([
        ("job", JOB_NAME),
        ("algorithm_version", algorithm_version),
        ("contributions", contributions),
        ("traits", [[t.key, t.value, t.n] for t in traits]),
    ])


def build_user_traits(ctx: AppContext, user_id: int, algorithm_version: str) -> Optional[int]:
    """
    Rebuild one user's traits unless contributions and stored traits are unchanged.

    Returns:
        Number of traits written, or None if the user was up-to-date
    """
    bundle = ctx.feature_source.get_bundle(user_id)
    if bundle is None:
        raise NotFoundError(f"User {user_id} not found")

    # The hash covers the stored traits too, so traits lost by the source
    # (e.g. a reloaded snapshot) are rebuilt even when answers are unchanged
    contributions = ctx.feature_source.get_quiz_trait_contributions(user_id)
    scope = user_scope(user_id)
    if ctx.freshness.is_fresh(JOB_NAME, scope, traits_input_hash(algorithm_version, contributions, bundle.traits)):
        logger.info(f"User {user_id}: traits up-to-date, skipping")
        return None

    traits = aggregate_trait_contributions(contributions)
    ctx.feature_source.replace_user_traits(user_id, traits)
    ctx.freshness.mark_computed(JOB_NAME, scope, traits_input_hash(algorithm_version, contributions, traits))
    logger.debug(f"User {user_id}: built {len(traits)} traits from {len(contributions)} answers")
    return len(traits)


def run_build_user_traits(ctx: AppContext, flags: Optional[JobFlags] = None) -> JobResult:
    flags = flags or JobFlags()
    job_config = ctx.config.jobs.user_traits
    user_batch_size = flags.batch_size or job_config.user_batch_size
    pause_ms = job_config.pause_ms if flags.pause_ms is None else flags.pause_ms
    version = job_config.algorithm_version

    job_start = time.time()
    logger.info("=" * 60)
    logger.info(f"STARTING {JOB_NAME.upper()} (version={version})")
    logger.info("=" * 60)

    result = JobResult(job_name=JOB_NAME)

    def process(user_id: int) -> None:
        written = build_user_traits(ctx, user_id, version)
        if written is None:
            result.skipped_users += 1
        else:
            result.processed_users += 1
            result.written += written

    if flags.user_id is not None:
        process(flags.user_id)
    else:
        after = None
        while True:
            user_ids = ctx.feature_source.list_user_ids(after, user_batch_size)
            if not user_ids:
                break
            for user_id in user_ids:
                try:
                    process(user_id)
                except Exception:
                    logger.exception(f"Failed building traits for user {user_id}")
                    result.failed_users.append(user_id)
            after = user_ids[-1]
            if len(user_ids) < user_batch_size:
                break
            if pause_ms > 0:
                time.sleep(pause_ms / 1000.0)

    result.stats['duration_s'] = round(time.time() - job_start, 3)
    logger.info(
        f"{JOB_NAME.upper()} COMPLETED in {result.stats['duration_s']:.2f}s: processed={result.processed_users} "
        f"skipped={result.skipped_users} failed={len(result.failed_users)} traits={result.written}"
    )
    return result
