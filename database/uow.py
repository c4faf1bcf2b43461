import contextlib
import logging

from database.database import SessionLocal, get_engine
from database.repository import ScoringRepository

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def scoring_uow():
    """Per-unit-of-work transaction scope.

    Yields a ScoringRepository bound to a fresh Session. Commits on success,
    rolls back on exception, always closes.

    Usage:
        with scoring_uow() as repo:
            repo.match_scores.save_scores(user_id, version, rows)
        # commit happens automatically on successful exit
    """
    get_engine()
    session = SessionLocal()
    try:
        repo = ScoringRepository(session)
        yield repo
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
