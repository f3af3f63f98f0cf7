from datetime import datetime, timezone
from typing import List, Optional

from kora_reclaim.shared.system.database.core import DatabaseCore


def to_epoch(value: Optional[datetime]) -> Optional[float]:
    return value.timestamp() if value is not None else None


def from_epoch(value: Optional[float]) -> Optional[datetime]:
    return datetime.fromtimestamp(value, tz=timezone.utc) if value is not None else None


class BaseRepository:
    """
    Base class for table-specific repositories.
    Provides access to the DB Core cursor and common helpers.
    """
    def __init__(self, db: DatabaseCore):
        self.db = db

    def _execute(self, query: str, params: tuple = (), commit: bool = True) -> None:
        with self.db.cursor(commit=commit) as c:
            c.execute(query, params)

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[dict]:
        with self.db.cursor() as c:
            c.execute(query, params)
            row = c.fetchone()
            return dict(row) if row else None

    def _fetchall(self, query: str, params: tuple = ()) -> List[dict]:
        with self.db.cursor() as c:
            c.execute(query, params)
            return [dict(row) for row in c.fetchall()]

    def init_table(self):
        """Override this to create tables."""
        raise NotImplementedError
