"""Batch job modules for MatchScout."""

from .models import JobFlags, JobResult
from .runner import run_job, run_jobs, run_group

__all__ = ['JobFlags', 'JobResult', 'run_job', 'run_jobs', 'run_group']
