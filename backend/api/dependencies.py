"""Database and pipeline dependencies for the API."""
import os
import threading
from pathlib import Path

from curation.config import CurationSettings
from curation.db import Database
from curation.migrations import apply_migrations
from curation.pipeline import CurationPipeline

# Database path - configurable via env var, defaults to memoria.db next to the backend
DB_PATH = Path(os.environ.get("DATABASE_PATH", str(Path(__file__).parent.parent / "memoria.db")))

# Busy timeout in seconds (configurable via environment variable)
DB_QUERY_TIMEOUT = int(os.environ.get("DB_QUERY_TIMEOUT", "30"))

_pipeline: CurationPipeline | None = None
_pipeline_lock = threading.Lock()


def get_database() -> Database:
    return Database(DB_PATH, timeout=DB_QUERY_TIMEOUT)


def get_pipeline() -> CurationPipeline:
    """Process-wide pipeline, created on first use.

    Tests replace it through app.dependency_overrides[get_pipeline].
    """
    global _pipeline
    if _pipeline is None:
        with _pipeline_lock:
            if _pipeline is None:
                db = get_database()
                apply_migrations(db)
                _pipeline = CurationPipeline(db, CurationSettings.from_env())
    return _pipeline


def shutdown_pipeline() -> None:
    global _pipeline
    with _pipeline_lock:
        if _pipeline is not None:
            _pipeline.shutdown()
            _pipeline = None
