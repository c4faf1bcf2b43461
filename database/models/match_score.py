from sqlalchemy import Column, Text, TIMESTAMP, BigInteger, Integer, Float, UniqueConstraint, Index, func

from .base import Base, JSONType


class MatchScore(Base):
    """
    Precomputed compatibility score of a candidate for a viewer.

    Rows are versioned by algorithm_version. A viewer's rows from older
    versions are removed once a newer version has been written.
    """
    __tablename__ = 'match_score'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=False)
    candidate_user_id = Column(BigInteger, nullable=False)
    algorithm_version = Column(Text, nullable=False)

    score = Column(Float, nullable=False)
    score_quiz = Column(Float)
    score_interests = Column(Float)
    score_ratings_quality = Column(Float)
    score_ratings_fit = Column(Float)
    score_new = Column(Float)
    score_nearby = Column(Float)

    distance_km = Column(Float, nullable=True)
    reasons = Column(JSONType, default=dict)
    tier = Column(Text, nullable=False, default='A')

    scored_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'candidate_user_id', 'algorithm_version', name='uq_match_score_pair_version'),
        Index('idx_match_score_user_score', 'user_id', 'score'),
    )
