"""Database connections for the curation store."""
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

DEFAULT_TIMEOUT = 30


def utcnow() -> str:
    """ISO-8601 UTC timestamp with microseconds, sortable as text."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class Database:
    """Opens short-lived sqlite connections to one database file.

    Every operation gets its own connection, so the object can be shared
    between request threads and curator workers.
    """

    def __init__(self, path: str | Path, timeout: int = DEFAULT_TIMEOUT):
        self.path = Path(path)
        self.timeout = timeout

    def connect(self) -> sqlite3.Connection:
        """Create a connection with row factory, busy timeout and WAL."""
        conn = sqlite3.connect(str(self.path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        # Set busy timeout to handle concurrent access
        conn.execute(f"PRAGMA busy_timeout = {self.timeout * 1000}")
        # WAL mode allows concurrent readers while one writer is active
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for a connection that is always closed."""
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Connection inside an IMMEDIATE transaction; commits or rolls back."""
        conn = self.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()
