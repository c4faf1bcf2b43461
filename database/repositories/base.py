from sqlalchemy.orm import Session
from sqlalchemy.dialects import postgresql, sqlite


class BaseRepository:
    def __init__(self, db: Session):
        self.db = db

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def _insert(self, model):
        """Dialect-specific INSERT supporting on_conflict_do_update."""
        if self.db.get_bind().dialect.name == 'sqlite':
            return sqlite.insert(model)
        return postgresql.insert(model)
