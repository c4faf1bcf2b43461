"""Job runner.

Runs registered jobs under an exclusive per-job lock and records every run
in the job_run table (RUNNING -> SUCCESS / FAILED).
"""

import time
import logging
import dataclasses
import traceback
from typing import List, Mapping, Optional

from core.app_context import AppContext
from database.repositories.job_run import STATUS_FAILED, STATUS_SUCCESS
from pipeline.control import JobLock
from pipeline.models import JobFlags, JobResult
from pipeline.registry import JOBS, JobDefinition, check_run_order, get_job, resolve_jobs_by_group

logger = logging.getLogger(__name__)


def _algorithm_version(ctx: AppContext, job: JobDefinition) -> Optional[str]:
    if not job.config_key:
        return None
    job_config = getattr(ctx.config.jobs, job.config_key, None)
    return getattr(job_config, "algorithm_version", None)


def run_job(
    ctx: AppContext,
    name: str,
    flags: Optional[JobFlags] = None,
    registry: Mapping[str, JobDefinition] = JOBS
) -> JobResult:
    """Run one job.

    Raises:
        JobDependencyError: unknown job
        JobLockedError: the job is already running elsewhere
        Exception: whatever the job raised, after the run is recorded as FAILED
    """
    job = get_job(name, registry)
    flags = flags or JobFlags()
    scope = f"user:{flags.user_id}" if flags.user_id is not None else "batch"
    trigger = "EVENT" if flags.user_id is not None else "CRON"

    if flags.full and not ctx.freshness.force:
        logger.info(f"Full run requested for {name}: freshness checks disabled")
        ctx = dataclasses.replace(ctx, freshness=ctx.freshness.forced())

    lock = JobLock(name, ctx.config.jobs.lock_dir)
    with lock.hold(source="cli", metadata={"scope": scope}):
        with ctx.uow_factory() as repo:
            run = repo.job_runs.start(
                job_name=name,
                trigger=trigger,
                scope=scope,
                algorithm_version=_algorithm_version(ctx, job),
                metadata={**job.default_params, "full": flags.full}
            )
            run_id = run.id

        started = time.time()
        try:
            result = job.run(ctx, flags)
        except Exception as e:
            logger.error(f"Job {name} failed after {time.time() - started:.2f}s: {e}")
            with ctx.uow_factory() as repo:
                repo.job_runs.finish(run_id, STATUS_FAILED, error=traceback.format_exc())
            raise

        error = None
        if result.failed_users:
            error = f"{len(result.failed_users)} users failed: {result.failed_users[:20]}"
        with ctx.uow_factory() as repo:
            repo.job_runs.finish(
                run_id,
                STATUS_SUCCESS if result.success else STATUS_FAILED,
                error=error,
                metadata=result.to_dict()
            )
        return result


def run_jobs(
    ctx: AppContext,
    names: List[str],
    flags: Optional[JobFlags] = None,
    registry: Mapping[str, JobDefinition] = JOBS
) -> List[JobResult]:
    """Run jobs in the given order, stopping at the first job that raises."""
    check_run_order(names, registry)
    results = []
    for name in names:
        results.append(run_job(ctx, name, flags, registry))
    return results


def run_group(
    ctx: AppContext,
    group: str,
    flags: Optional[JobFlags] = None,
    registry: Mapping[str, JobDefinition] = JOBS
) -> List[JobResult]:
    order = resolve_jobs_by_group(group, registry)
    logger.info(f"Running group '{group}': {' -> '.join(order)}")
    return run_jobs(ctx, order, flags, registry)
