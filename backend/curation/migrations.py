"""
Versioned schema migrations for the curation store.

Each migration is applied once, in order, and recorded in schema_migrations.
Add new migrations at the end of MIGRATIONS; never edit an applied one.
"""
import sqlite3

import structlog

from .db import Database, utcnow

logger = structlog.get_logger("memoria.curation.migrations")


MIGRATIONS: list[tuple[int, str, list[str]]] = [
    (1, "create_watchlist_entities", [
        """
        CREATE TABLE IF NOT EXISTS watchlist_entities (
            id TEXT PRIMARY KEY,
            external_id TEXT NOT NULL,
            source VARCHAR(50) NOT NULL,
            full_name VARCHAR(200) NOT NULL,
            normalized_name VARCHAR(200) NOT NULL,
            aliases TEXT NOT NULL DEFAULT '[]',
            normalized_aliases TEXT NOT NULL DEFAULT '[]',
            sanctions_programs TEXT NOT NULL DEFAULT '[]',
            tier INTEGER NOT NULL DEFAULT 1,
            entity_type VARCHAR(20) NOT NULL DEFAULT 'PERSON'
                CHECK (entity_type IN ('PERSON', 'ORGANIZATION')),
            confidence_level INTEGER NOT NULL DEFAULT 5
                CHECK (confidence_level BETWEEN 1 AND 5),
            nationality VARCHAR(2),
            date_of_birth TEXT,
            notes TEXT,
            verified_at TIMESTAMP NOT NULL,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL,
            UNIQUE (external_id, source)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_watchlist_full_name ON watchlist_entities(full_name)",
        "CREATE INDEX IF NOT EXISTS idx_watchlist_external_id ON watchlist_entities(external_id)",
        """
        CREATE TABLE IF NOT EXISTS watchlist_meta (
            key TEXT PRIMARY KEY,
            value INTEGER NOT NULL
        )
        """,
        "INSERT OR IGNORE INTO watchlist_meta (key, value) VALUES ('version', 0)",
    ]),
    (2, "create_review_items", [
        """
        CREATE TABLE IF NOT EXISTS review_items (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            dedup_key TEXT NOT NULL,
            raw_text TEXT NOT NULL,
            normalized_text VARCHAR(320) NOT NULL,
            entity_type VARCHAR(10) NOT NULL CHECK (entity_type IN ('PERSON', 'ORG', 'LOCATION')),
            article_context TEXT NOT NULL DEFAULT '',
            source_confidence INTEGER NOT NULL CHECK (source_confidence BETWEEN 1 AND 5),
            language VARCHAR(8) NOT NULL DEFAULT 'es',
            matched_entity_id TEXT,
            matched_entity TEXT,
            match_score REAL NOT NULL,
            match_type VARCHAR(10) NOT NULL CHECK (match_type IN ('exact', 'alias', 'fuzzy', 'none')),
            matched_on TEXT,
            watchlist_version INTEGER NOT NULL DEFAULT 0,
            routing VARCHAR(20) NOT NULL CHECK (routing IN ('llm-review', 'human-review')),
            status VARCHAR(15) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'approved', 'flagged', 'investigating', 'rejected')),
            curator_verdict TEXT,
            curator_attempts INTEGER NOT NULL DEFAULT 0,
            issues TEXT NOT NULL DEFAULT '[]',
            resolved_by TEXT,
            resolved_at TIMESTAMP,
            notes TEXT,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        )
        """,
        # At most one open item per extracted entity + article context
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_review_open_dedup
        ON review_items(dedup_key) WHERE status = 'pending'
        """,
        "CREATE INDEX IF NOT EXISTS idx_review_status_created ON review_items(status, created_at, seq)",
    ]),
    (3, "create_review_audit", [
        """
        CREATE TABLE IF NOT EXISTS review_audit (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            item_id TEXT,
            event VARCHAR(40) NOT NULL,
            from_status VARCHAR(15),
            to_status VARCHAR(15),
            actor TEXT NOT NULL,
            detail TEXT NOT NULL DEFAULT '{}',
            created_at TIMESTAMP NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_review_audit_item ON review_audit(item_id, id)",
        # Append-only
        """
        CREATE TRIGGER IF NOT EXISTS review_audit_no_update
        BEFORE UPDATE ON review_audit
        BEGIN
            SELECT RAISE(ABORT, 'review_audit is append-only');
        END
        """,
        """
        CREATE TRIGGER IF NOT EXISTS review_audit_no_delete
        BEFORE DELETE ON review_audit
        BEGIN
            SELECT RAISE(ABORT, 'review_audit is append-only');
        END
        """,
    ]),
]


def _ensure_migrations_table(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            applied_at TIMESTAMP NOT NULL
        )
    """)
    conn.commit()


def applied_versions(conn: sqlite3.Connection) -> set[int]:
    _ensure_migrations_table(conn)
    return {row[0] for row in conn.execute("SELECT version FROM schema_migrations")}


def apply_migrations(db: Database) -> list[int]:
    """Apply every pending migration. Returns the versions applied."""
    applied = []
    with db.connection() as conn:
        done = applied_versions(conn)
        for version, name, statements in MIGRATIONS:
            if version in done:
                continue
            try:
                conn.execute("BEGIN IMMEDIATE")
                # Re-check inside the write lock; another process may have won
                row = conn.execute(
                    "SELECT 1 FROM schema_migrations WHERE version = ?", (version,)
                ).fetchone()
                if row:
                    conn.rollback()
                    continue
                for statement in statements:
                    conn.execute(statement)
                conn.execute(
                    "INSERT INTO schema_migrations (version, name, applied_at) VALUES (?, ?, ?)",
                    (version, name, utcnow()),
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                logger.error("migration_failed", version=version, name=name)
                raise
            applied.append(version)
            logger.info("migration_applied", version=version, name=name)
    return applied
