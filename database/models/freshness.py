from sqlalchemy import Column, Text, TIMESTAMP, func

from .base import Base


class JobFreshness(Base):
    """
    Last input hash computed for a unit of work.

    Keyed by (job_name, scope). Rows are upserted after each successful
    computation and never deleted by the jobs themselves.
    """
    __tablename__ = 'job_freshness'

    job_name = Column(Text, primary_key=True)
    scope = Column(Text, primary_key=True)
    input_hash = Column(Text, nullable=False)
    computed_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
