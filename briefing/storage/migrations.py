"""Version-controlled schema migrations for the subscriber store."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import List, Tuple

logger = logging.getLogger(__name__)

# Each migration is (version, description, list_of_sql_statements)
MigrationStep = Tuple[int, str, List[str]]

SCHEMA_SQL_PATH = Path(__file__).parent / "schema.sql"


def _get_migrations() -> List[MigrationStep]:
    """Return ordered list of migrations."""
    return [
        (
            1,
            "Initial schema: subscribers",
            [SCHEMA_SQL_PATH.read_text(encoding="utf-8")],
        ),
        (
            2,
            "Add deliveries table for per-run outcomes",
            [
                """CREATE TABLE IF NOT EXISTS deliveries (
                       id INTEGER PRIMARY KEY AUTOINCREMENT,
                       run_id TEXT NOT NULL,
                       email TEXT NOT NULL,
                       article_count INTEGER NOT NULL DEFAULT 0,
                       delivered BOOLEAN NOT NULL DEFAULT 0,
                       error TEXT,
                       created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                   );""",
                "CREATE INDEX IF NOT EXISTS idx_deliveries_run ON deliveries(run_id);",
                "CREATE INDEX IF NOT EXISTS idx_deliveries_email ON deliveries(email);",
            ],
        ),
    ]


def get_current_version(conn: sqlite3.Connection) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    except sqlite3.OperationalError:
        return 0
    return row[0] if row and row[0] is not None else 0


def pending_migrations(current: int) -> List[MigrationStep]:
    """Migrations newer than ``current``, oldest first."""
    return [step for step in _get_migrations() if step[0] > current]


def apply_migrations(db_path: str) -> int:
    """Bring the store at ``db_path`` up to the latest schema. Returns the final version."""
    with closing(sqlite3.connect(db_path)) as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        pending = pending_migrations(get_current_version(conn))
        for step in pending:
            _apply_step(conn, step)
        final = get_current_version(conn)

    if pending:
        logger.info(
            "Schema migrated to v%d (%s)", final, ", ".join(f"v{v}" for v, _, _ in pending)
        )
    else:
        logger.debug("Schema up to date at v%d", final)
    return final


def _apply_step(conn: sqlite3.Connection, step: MigrationStep) -> None:
    """Run one migration and record it; a failed step is rolled back and re-raised."""
    version, description, statements = step
    logger.info("Applying migration v%d: %s", version, description)
    try:
        for sql in statements:
            conn.executescript(sql)
        conn.execute(
            "INSERT INTO schema_version (version, description) VALUES (?, ?)",
            (version, description),
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        logger.exception("Migration v%d (%s) failed", version, description)
        raise
