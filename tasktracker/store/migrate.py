"""
Database schema setup.

The schema is one idempotent script (`CREATE ... IF NOT EXISTS`), safe to run on every start.
After it runs, the `users` and `tasks` tables are checked for every column PostgresStore reads
or writes, so a pre-existing table with a different shape is reported instead of surfacing
later as a failed request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from tasktracker.store.config import StoreConfig, build_postgres_dsn, load_store_config

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "migrations" / "0001_init.sql"

# Session-level advisory lock so two app instances starting together do not interleave DDL.
SCHEMA_LOCK_KEY = 584120937712

STORE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "users": ("id", "email", "password_hash", "created_at"),
    "tasks": ("id", "user_id", "title", "status", "created_at"),
}


class SchemaError(RuntimeError):
    pass


@dataclass(frozen=True)
class MigrationResult:
    attempted: bool
    ok: bool
    message: str


def load_schema_sql() -> str:
    return SCHEMA_PATH.read_text(encoding="utf-8")


def _connect(dsn: str):
    import psycopg

    return psycopg.connect(dsn)


def missing_store_columns(conn) -> List[str]:
    """Return `table.column` names the store needs but the database lacks."""
    rows = conn.execute(
        """
        SELECT table_name, column_name
        FROM information_schema.columns
        WHERE table_schema = current_schema() AND table_name = ANY(%s)
        """,
        (list(STORE_COLUMNS),),
    ).fetchall()
    present = {(str(r[0]), str(r[1])) for r in rows}
    return [f"{table}.{col}" for table, cols in STORE_COLUMNS.items() for col in cols if (table, col) not in present]


def apply_schema(*, dsn: str, sql: Optional[str] = None) -> None:
    """
    Create the users/tasks tables if needed and verify their columns.

    Raises SchemaError when a required column is missing after the script ran.
    """
    script = sql if sql is not None else load_schema_sql()
    with _connect(dsn) as conn:
        conn.execute("SELECT pg_advisory_lock(%s);", (SCHEMA_LOCK_KEY,))
        try:
            with conn.transaction():
                conn.execute(script)
            missing = missing_store_columns(conn)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s);", (SCHEMA_LOCK_KEY,))

    if missing:
        raise SchemaError(f"Task tracker schema is incomplete; missing: {', '.join(missing)}")
    logger.info("Schema ready: tables=%s", ",".join(STORE_COLUMNS))


def maybe_auto_migrate(cfg: Optional[StoreConfig] = None) -> MigrationResult:
    """Apply the schema on startup when DB_AUTO_MIGRATE=1 and Postgres is configured."""
    cfg = cfg or load_store_config()
    if not cfg.db_auto_migrate:
        return MigrationResult(attempted=False, ok=True, message="DB_AUTO_MIGRATE is disabled")
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        return MigrationResult(attempted=False, ok=True, message="Postgres DSN not configured")
    try:
        apply_schema(dsn=dsn)
    except Exception as e:
        return MigrationResult(attempted=True, ok=False, message=f"Schema setup failed: {e}")
    return MigrationResult(attempted=True, ok=True, message="Schema ready")


def main() -> int:
    cfg = load_store_config()
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        print("Postgres not configured (set DATABASE_URL or POSTGRES_* env vars).")
        return 2
    try:
        apply_schema(dsn=dsn)
    except SchemaError as e:
        print(str(e))
        return 1
    print("Schema ready.")
    return 0
