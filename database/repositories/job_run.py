from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from sqlalchemy import select

from database.models import JobRun
from database.repositories.base import BaseRepository

STATUS_RUNNING = 'RUNNING'
STATUS_SUCCESS = 'SUCCESS'
STATUS_FAILED = 'FAILED'


class JobRunRepository(BaseRepository):
    def start(
        self,
        job_name: str,
        trigger: str = 'cli',
        scope: Optional[str] = None,
        algorithm_version: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> JobRun:
        run = JobRun(
            job_name=job_name,
            trigger=trigger,
            scope=scope,
            algorithm_version=algorithm_version,
            status=STATUS_RUNNING,
            started_at=datetime.now(timezone.utc),
            run_metadata=metadata or {}
        )
        self.db.add(run)
        self.db.flush()  # Generate ID
        return run

    def finish(
        self,
        run_id: int,
        status: str,
        error: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[JobRun]:
        run = self.db.get(JobRun, run_id)
        if run is None:
            return None
        finished_at = datetime.now(timezone.utc)
        started_at = run.started_at
        if started_at is not None and started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=timezone.utc)

        run.status = status
        run.finished_at = finished_at
        run.duration_ms = int((finished_at - started_at).total_seconds() * 1000) if started_at else None
        run.error = error
        if metadata:
            run.run_metadata = {**(run.run_metadata or {}), **metadata}
        self.db.flush()
        return run

    def get_recent(self, job_name: Optional[str] = None, limit: int = 20) -> List[JobRun]:
        stmt = select(JobRun).order_by(JobRun.started_at.desc(), JobRun.id.desc()).limit(limit)
        if job_name:
            stmt = stmt.where(JobRun.job_name == job_name)
        return list(self.db.execute(stmt).scalars().all())
