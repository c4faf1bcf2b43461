from sqlalchemy import Column, Text, TIMESTAMP, Integer, Index, func

from .base import Base, JSONType


class JobRun(Base):
    """
    Bookkeeping for one job invocation.

    status moves RUNNING -> SUCCESS or FAILED.
    """
    __tablename__ = 'job_run'

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_name = Column(Text, nullable=False)
    trigger = Column(Text, nullable=False, default='cli')
    scope = Column(Text, nullable=True)
    algorithm_version = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default='RUNNING')
    started_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    finished_at = Column(TIMESTAMP(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)

    # "metadata" is reserved on declarative classes
    run_metadata = Column('metadata', JSONType, default=dict)

    __table_args__ = (
        Index('idx_job_run_name_started', 'job_name', 'started_at'),
    )
