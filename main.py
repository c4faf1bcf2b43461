import sys
import logging
import argparse

from core.app_context import AppContext
from core.config_loader import load_config
from core.errors import MatchScoutError
from database.database import configure_database
from database.init_db import init_db
from pipeline.models import JobFlags
from pipeline.registry import JOBS, get_job_groups
from pipeline.runner import run_job, run_group

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _add_job_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--user-id', type=int, default=None,
                        help='Only process this user')
    parser.add_argument('--batch-size', type=int, default=None,
                        help='Users per batch')
    parser.add_argument('--candidate-batch-size', '--target-batch-size', dest='candidate_batch_size',
                        type=int, default=None, help='Candidates (targets) per page')
    parser.add_argument('--pause-ms', type=int, default=None,
                        help='Pause between batches in milliseconds')
    parser.add_argument('--full', action='store_true',
                        help='Ignore freshness records and recompute everything')


def _flags_from_args(args) -> JobFlags:
    return JobFlags(
        user_id=args.user_id,
        batch_size=args.batch_size,
        candidate_batch_size=args.candidate_batch_size,
        pause_ms=args.pause_ms,
        full=args.full,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MatchScout job driver")
    parser.add_argument('--config', type=str, default='config.yaml',
                        help='Path to config.yaml')
    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Run a single job')
    run_parser.add_argument('job', choices=sorted(JOBS), help='Job name')
    _add_job_flags(run_parser)

    group_parser = subparsers.add_parser('run-group', help='Run a job group in dependency order')
    group_parser.add_argument('group', help='Job group name')
    _add_job_flags(group_parser)

    subparsers.add_parser('list', help='List registered jobs')
    subparsers.add_parser('init-db', help='Create database tables')
    return parser


def list_jobs() -> None:
    for group in get_job_groups():
        print(f"[{group}]")
        for job in JOBS.values():
            if job.group != group:
                continue
            deps = f" (after: {', '.join(job.dependencies)})" if job.dependencies else ""
            print(f"  {job.name}: {job.description}{deps}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == 'list':
        list_jobs()
        return 0

    config = load_config(args.config)
    configure_database(config.database.url)

    if args.command == 'init-db':
        init_db()
        return 0

    flags = _flags_from_args(args)
    try:
        ctx = AppContext.build(config)
        if args.command == 'run':
            results = [run_job(ctx, args.job, flags)]
        else:
            results = run_group(ctx, args.group, flags)
    except MatchScoutError as e:
        logger.error(str(e))
        return 2

    return 0 if all(r.success for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
