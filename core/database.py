import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Set, Tuple
import config
from core.migrations import MIGRATIONS

logger = logging.getLogger(__name__)


def _connect() -> sqlite3.Connection:
    if not config.DB_FILE:
        raise RuntimeError("Database path not set. Call services.file_manager.init_paths() first.")

    conn = sqlite3.connect(str(config.DB_FILE))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_conn() -> Iterator[sqlite3.Connection]:
    """
    Yields a connection to the gym database.
    Commits when the block succeeds, rolls back if it raises, and always closes.
    """
    conn = _connect()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _ensure_migrations_table(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS migrations (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            applied_at TEXT DEFAULT (datetime('now', 'localtime'))
        )
    """)
    conn.commit()


def _applied_ids(conn: sqlite3.Connection) -> Set[int]:
    return {row["id"] for row in conn.execute("SELECT id FROM migrations")}


def init_db() -> int:
    """
    Initializes the SQLite database by applying every pending migration.
    Each migration runs in its own transaction; a failing one is rolled back
    and the error is re-raised.

    Returns:
        int: The number of migrations applied.
    """
    conn = _connect()
    try:
        _ensure_migrations_table(conn)
        applied = _applied_ids(conn)
        pending = [m for m in sorted(MIGRATIONS) if m[0] not in applied]

        if not pending:
            logger.debug("No pending migrations")
            return 0

        for migration_id, name, up_sql, _ in pending:
            try:
                # executescript commits first, so the explicit BEGIN keeps
                # the script and its bookkeeping row in one transaction
                conn.executescript("BEGIN;\n" + up_sql)
                conn.execute("INSERT INTO migrations (id, name) VALUES (?, ?)", (migration_id, name))
                conn.commit()
                logger.info("Applied migration %s - %s", migration_id, name)
            except sqlite3.Error:
                if conn.in_transaction:
                    conn.rollback()
                logger.exception("Migration %s - %s failed", migration_id, name)
                raise

        return len(pending)
    finally:
        conn.close()


def rollback_last_migration() -> bool:
    """
    Reverts the most recently applied migration using its DOWN script.

    Returns:
        bool: False if there was nothing to roll back.
    """
    conn = _connect()
    try:
        _ensure_migrations_table(conn)
        row = conn.execute("SELECT id FROM migrations ORDER BY id DESC LIMIT 1").fetchone()
        if not row:
            logger.info("No migrations to roll back")
            return False

        by_id = {m[0]: m for m in MIGRATIONS}
        migration_id, name, _, down_sql = by_id[row["id"]]
        if not down_sql.strip():
            raise RuntimeError(f"Migration {migration_id} has no DOWN script")

        try:
            conn.executescript("BEGIN;\n" + down_sql)
            conn.execute("DELETE FROM migrations WHERE id = ?", (migration_id,))
            conn.commit()
            logger.info("Rolled back migration %s - %s", migration_id, name)
        except sqlite3.Error:
            if conn.in_transaction:
                conn.rollback()
            logger.exception("Rollback of migration %s failed", migration_id)
            raise
        return True
    finally:
        conn.close()


def migration_status() -> List[Tuple[int, str, bool]]:
    """Lists every known migration as (id, name, applied)."""
    conn = _connect()
    try:
        _ensure_migrations_table(conn)
        applied = _applied_ids(conn)
    finally:
        conn.close()
    return [(m[0], m[1], m[0] in applied) for m in sorted(MIGRATIONS)]
