from typing import Optional
from datetime import datetime

from sqlalchemy import select

from database.models import JobFreshness
from database.repositories.base import BaseRepository


class FreshnessRepository(BaseRepository):
    def get(self, job_name: str, scope: str) -> Optional[JobFreshness]:
        stmt = select(JobFreshness).where(
            JobFreshness.job_name == job_name,
            JobFreshness.scope == scope
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_hash(self, job_name: str, scope: str) -> Optional[str]:
        stmt = select(JobFreshness.input_hash).where(
            JobFreshness.job_name == job_name,
            JobFreshness.scope == scope
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def upsert(self, job_name: str, scope: str, input_hash: str, computed_at: datetime) -> None:
        stmt = self._insert(JobFreshness).values(
            job_name=job_name,
            scope=scope,
            input_hash=input_hash,
            computed_at=computed_at
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=['job_name', 'scope'],
            set_={
                'input_hash': input_hash,
                'computed_at': computed_at
            }
        )
        self.db.execute(stmt)
