from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from tasktracker.auth.models import Account
from tasktracker.core.models import Task
from tasktracker.store.base import DuplicateEmailError
from tasktracker.store.config import StoreConfig

logger = logging.getLogger(__name__)

_TASK_COLUMNS = "id, user_id, title, status, created_at"


def _task_from_row(row: Sequence[Any]) -> Task:
    task_id, user_id, title, status, created_at = row
    return Task(id=task_id, account_id=user_id, title=title, status=status, created_at=created_at)


def _account_from_row(row: Sequence[Any]) -> Account:
    account_id, email, password_hash, created_at = row
    return Account(id=account_id, email=email, password_hash=password_hash, created_at=created_at)


class PostgresStore:
    """
    Store backed by a psycopg connection pool.

    Each operation is a single parameterized statement; the pool's connection context commits
    on success and rolls back on error.
    """

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 10):
        from psycopg_pool import ConnectionPool

        self._pool = ConnectionPool(conninfo=dsn, min_size=min_size, max_size=max_size, open=False)

    @classmethod
    def from_config(cls, cfg: StoreConfig, dsn: str) -> "PostgresStore":
        return cls(dsn, min_size=cfg.pool_min_size, max_size=cfg.pool_max_size)

    def open(self) -> None:
        self._pool.open()

    def close(self) -> None:
        self._pool.close()

    def _fetchone(self, sql: str, params: Sequence[Any]) -> Optional[Sequence[Any]]:
        with self._pool.connection() as conn:
            return conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: Sequence[Any]) -> List[Sequence[Any]]:
        with self._pool.connection() as conn:
            return conn.execute(sql, params).fetchall()

    # ---- accounts ----

    def create_account(self, email: str, password_hash: str) -> Account:
        row = self._fetchone(
            """
            INSERT INTO users (email, password_hash)
            VALUES (%s, %s)
            ON CONFLICT (email) DO NOTHING
            RETURNING id, email, password_hash, created_at
            """,
            (email, password_hash),
        )
        if row is None:
            raise DuplicateEmailError(email)
        return _account_from_row(row)

    def get_account_by_email(self, email: str) -> Optional[Account]:
        row = self._fetchone(
            "SELECT id, email, password_hash, created_at FROM users WHERE email = %s",
            (email,),
        )
        return _account_from_row(row) if row else None

    # ---- tasks (always scoped by user_id) ----

    def list_tasks(self, account_id: int, status: Optional[str] = None) -> List[Task]:
        sql = f"SELECT {_TASK_COLUMNS} FROM tasks WHERE user_id = %s"
        params: List[Any] = [account_id]
        if status:
            sql += " AND status = %s"
            params.append(status)
        sql += " ORDER BY id DESC"
        return [_task_from_row(r) for r in self._fetchall(sql, params)]

    def create_task(self, account_id: int, title: str) -> Task:
        row = self._fetchone(
            f"INSERT INTO tasks (title, user_id) VALUES (%s, %s) RETURNING {_TASK_COLUMNS}",
            (title, account_id),
        )
        if row is None:
            raise RuntimeError("INSERT INTO tasks returned no row")
        return _task_from_row(row)

    def update_task(
        self, account_id: int, task_id: int, *, title: Optional[str] = None, status: Optional[str] = None
    ) -> Optional[Task]:
        updates: List[str] = []
        params: List[Any] = []
        if title is not None:
            updates.append("title = %s")
            params.append(title)
        if status is not None:
            updates.append("status = %s")
            params.append(status)
        if not updates:
            raise ValueError("nothing to update")
        params.extend([task_id, account_id])
        row = self._fetchone(
            f"UPDATE tasks SET {', '.join(updates)} WHERE id = %s AND user_id = %s RETURNING {_TASK_COLUMNS}",
            params,
        )
        return _task_from_row(row) if row else None

    def delete_task(self, account_id: int, task_id: int) -> bool:
        row = self._fetchone(
            "DELETE FROM tasks WHERE id = %s AND user_id = %s RETURNING id",
            (task_id, account_id),
        )
        return row is not None
