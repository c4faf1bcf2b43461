"""Job registry and dependency resolution.

Each job declares the jobs that must complete before it. The resolver turns
a set of jobs into an execution order, and check_run_order() refuses an
explicitly requested order that would run a job before one of its
dependencies instead of silently reordering it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from core.errors import JobDependencyError
from pipeline.match_scores import JOB_NAME as MATCH_SCORES, run_match_scores
from pipeline.user_traits import JOB_NAME as BUILD_USER_TRAITS, run_build_user_traits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobDefinition:
    name: str
    description: str
    run: Callable
    group: Optional[str] = None
    dependencies: Tuple[str, ...] = ()
    default_params: Dict[str, Any] = field(default_factory=dict)
    config_key: Optional[str] = None  # Section of config.jobs holding the job's settings


JOBS: Dict[str, JobDefinition] = {
    BUILD_USER_TRAITS: JobDefinition(
        name=BUILD_USER_TRAITS,
        description="Aggregate per-user trait vectors from quiz answers",
        run=run_build_user_traits,
        group="matching",
        config_key="user_traits",
    ),
    MATCH_SCORES: JobDefinition(
        name=MATCH_SCORES,
        description="Compute top-K match scores for every user",
        run=run_match_scores,
        group="matching",
        dependencies=(BUILD_USER_TRAITS,),
        config_key="match_scores",
    ),
}


def get_job(name: str, registry: Mapping[str, JobDefinition] = JOBS) -> JobDefinition:
    job = registry.get(name)
    if job is None:
        raise JobDependencyError(f"Unknown job: {name} (known: {', '.join(sorted(registry))})")
    return job


def resolve_job_dependencies(
    names: Sequence[str],
    registry: Mapping[str, JobDefinition] = JOBS
) -> List[str]:
    """
    Execution order for names plus everything they depend on.

    Depth-first topological sort; dependencies always precede dependents and
    otherwise the input order is kept.

    Raises:
        JobDependencyError: on unknown jobs, missing dependencies or cycles
    """
    resolved: List[str] = []
    visited = set()
    visiting = set()

    def visit(name: str, path: List[str]) -> None:
        if name in visited:
            return
        if name in visiting:
            cycle = " -> ".join(path + [name])
            raise JobDependencyError(f"Circular dependency detected: {cycle}")

        job = registry.get(name)
        if job is None:
            required_by = path[-1] if path else "root"
            raise JobDependencyError(f"Dependency not found: {name} (required by {required_by})")

        visiting.add(name)
        for dep in job.dependencies:
            visit(dep, path + [name])
        visiting.discard(name)
        visited.add(name)
        resolved.append(name)

    for name in names:
        visit(name, [])
    return resolved


def resolve_jobs_by_group(group: str, registry: Mapping[str, JobDefinition] = JOBS) -> List[str]:
    """Jobs in group, plus out-of-group dependencies, in execution order."""
    members = [name for name, job in registry.items() if job.group == group]
    if not members:
        raise JobDependencyError(f"Unknown job group: {group}")
    return resolve_job_dependencies(members, registry)


def check_run_order(names: Sequence[str], registry: Mapping[str, JobDefinition] = JOBS) -> None:
    """
    Validate an explicitly requested order.

    Dependencies that are not part of the request are the caller's
    responsibility; dependencies that are must come first.

    Raises:
        JobDependencyError: on unknown jobs, cycles, or a dependency requested after its dependent
    """
    resolve_job_dependencies(names, registry)

    position = {name: i for i, name in enumerate(names)}
    for i, name in enumerate(names):
        for dep in registry[name].dependencies:
            if dep in position and position[dep] > i:
                raise JobDependencyError(
                    f"Job '{name}' depends on '{dep}', which is scheduled after it; refusing to reorder"
                )


def get_job_groups(registry: Mapping[str, JobDefinition] = JOBS) -> List[str]:
    return sorted({job.group for job in registry.values() if job.group})
