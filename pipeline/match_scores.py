"""Match score job.

For every viewer: page through all candidates, keep the best top_k in a
single heap spanning every page, and write them under the configured
algorithm version. A viewer whose inputs hash is unchanged since the last
successful run is skipped. The hash includes a date bucket, because
newness and age compliance change as time passes even when no feature does.
"""

import time
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from core.app_context import AppContext
from core.cache.freshness import hash_key_values, user_scope
from core.errors import NotFoundError
from core.scorer import FeatureBundle, ScoreResult, ViewerContext
from core.scorer.stats import summarize_distribution
from pipeline.models import JobFlags, JobResult

logger = logging.getLogger(__name__)

JOB_NAME = "match-scores"

EPOCH = date(1970, 1, 1)


def refresh_bucket(now: datetime, interval_days: int) -> date:
    """First day of the refresh interval containing now (UTC), counted from the epoch."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    days = (now.date() - EPOCH).days
    return EPOCH + timedelta(days=days - days % interval_days)


def match_score_input_hash(
    user_id: int,
    algorithm_version: str,
    prefs_fingerprint: Dict,
    snapshot_marker,
    top_k: int,
    as_of: date
) -> str:
    """Digest of everything that affects a viewer's stored scores."""
    return hash_key_values([
        ("job", JOB_NAME),
        ("algorithm_version", algorithm_version),
        ("user_id", user_id),
        ("prefs", prefs_fingerprint),
        ("features", snapshot_marker),
        ("top_k", top_k),
        ("as_of", as_of),
    ])


def _to_row(candidate: FeatureBundle, result: ScoreResult) -> Dict:
    row = {
        'candidate_user_id': candidate.user_id,
        'score': result.final_score,
        'distance_km': result.distance_km,
        'tier': result.tier,
        'reasons': {
            'components': result.meta,
            'compliance': result.compliance,
        },
    }
    row.update(result.components)
    return row


def _pause(pause_ms: int) -> None:
    if pause_ms and pause_ms > 0:
        time.sleep(pause_ms / 1000.0)


def recompute_match_scores_for_user(
    ctx: AppContext,
    user_id: int,
    candidate_batch_size: int,
    pause_ms: int,
    top_k: int,
    algorithm_version: str,
    now: Optional[datetime] = None
) -> int:
    """
    Score every candidate for one viewer and store the top_k.

    Old-version rows are removed only after a non-empty write, so a viewer
    with no candidates keeps whatever was stored before.

    Returns:
        Number of scores written
    """
    viewer = ctx.feature_source.get_bundle(user_id)
    if viewer is None:
        raise NotFoundError(f"User {user_id} not found")

    now = now or datetime.now(timezone.utc)
    viewer_ctx = ViewerContext(viewer=viewer, prefs=ctx.prefs, now=now)
    ranker = ctx.aggregator.ranker(viewer_ctx, top_k)

    after = None
    pages = 0
    while True:
        page = ctx.feature_source.list_candidates(user_id, after, candidate_batch_size)
        if not page:
            break
        ranker.offer_all(page)
        pages += 1
        after = page[-1].user_id
        if len(page) < candidate_batch_size:
            break
        _pause(pause_ms)

    ranked: List[Tuple[FeatureBundle, ScoreResult]] = ranker.results()
    logger.debug(
        f"User {user_id}: {pages} candidate pages, evaluated={ranker.evaluated}, "
        f"pruned={ranker.pruned}, kept={len(ranked)}"
    )

    if not ranked:
        logger.info(f"User {user_id}: no scores produced, preserving existing rows")
        return 0

    rows = [_to_row(candidate, result) for candidate, result in ranked]
    with ctx.uow_factory() as repo:
        written = repo.match_scores.save_scores(user_id, algorithm_version, rows, scored_at=now)
        deleted = repo.match_scores.delete_stale(user_id, algorithm_version, [r['candidate_user_id'] for r in rows])

    if deleted:
        logger.info(f"User {user_id}: removed {deleted} stale scores")

    components: Dict[str, List[float]] = {}
    for _, result in ranked:
        for key, value in result.components.items():
            components.setdefault(key, []).append(value)
    distribution = summarize_distribution([r.final_score for _, r in ranked], components)
    logger.info(
        f"User {user_id} distribution: count={distribution['count']} mean={distribution['mean']:.4f} "
        f"p50={distribution['p50']:.4f} p90={distribution['p90']:.4f} zeros={distribution['zeros']}"
    )
    logger.debug(f"User {user_id} component distribution: {distribution['components']}")
    return written


def run_match_scores(
    ctx: AppContext,
    flags: Optional[JobFlags] = None,
    now: Optional[datetime] = None
) -> JobResult:
    """Run the match score job for one user (flags.user_id) or every user in batches.

    now is the scoring clock, shared by every pair of the run. Defaults to the current UTC time.
    """
    flags = flags or JobFlags()
    job_config = ctx.config.jobs.match_scores
    user_batch_size = flags.batch_size or job_config.user_batch_size
    candidate_batch_size = flags.candidate_batch_size or job_config.candidate_batch_size
    pause_ms = job_config.pause_ms if flags.pause_ms is None else flags.pause_ms
    top_k = job_config.top_k
    version = job_config.algorithm_version

    job_start = time.time()
    logger.info("=" * 60)
    logger.info(f"STARTING {JOB_NAME.upper()} (version={version}, top_k={top_k})")
    logger.info("=" * 60)

    result = JobResult(job_name=JOB_NAME)
    marker = ctx.feature_source.snapshot_marker()
    prefs_fingerprint = ctx.prefs.fingerprint()
    now = now or datetime.now(timezone.utc)
    as_of = refresh_bucket(now, job_config.refresh_interval_days)

    def process(user_id: int) -> None:
        scope = user_scope(user_id)
        input_hash = match_score_input_hash(user_id, version, prefs_fingerprint, marker, top_k, as_of)
        if ctx.freshness.is_fresh(JOB_NAME, scope, input_hash):
            logger.info(f"User {user_id}: up-to-date, skipping")
            result.skipped_users += 1
            return

        step_start = time.time()
        written = recompute_match_scores_for_user(
            ctx, user_id, candidate_batch_size, pause_ms, top_k, version, now=now
        )
        ctx.freshness.mark_computed(JOB_NAME, scope, input_hash)
        result.processed_users += 1
        result.written += written
        logger.info(f"User {user_id}: wrote {written} scores in {time.time() - step_start:.2f}s")

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
                    logger.exception(f"Failed computing match scores for user {user_id}")
                    result.failed_users.append(user_id)
            after = user_ids[-1]
            if len(user_ids) < user_batch_size:
                break
            _pause(pause_ms)

    result.stats['duration_s'] = round(time.time() - job_start, 3)
    logger.info("=" * 60)
    logger.info(
        f"{JOB_NAME.upper()} COMPLETED in {result.stats['duration_s']:.2f}s: processed={result.processed_users} "
        f"skipped={result.skipped_users} failed={len(result.failed_users)} written={result.written}"
    )
    logger.info("=" * 60)
    return result
