"""
Pytest config.

Local imports like `import tasktracker` rely on the repo root being on sys.path; when pytest is
invoked through a global entrypoint that doesn't happen reliably during collection, so we pin it
here.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from fastapi.testclient import TestClient  # noqa: E402

from tasktracker.api.app import create_app  # noqa: E402
from tasktracker.auth.config import AuthConfig, load_auth_config  # noqa: E402
from tasktracker.auth.models import Account  # noqa: E402
from tasktracker.auth.session import SessionSigner  # noqa: E402
from tasktracker.core.models import Task  # noqa: E402
from tasktracker.store.base import DuplicateEmailError  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-purposes-only"


class InMemoryStore:
    """
    Store double with the same owner-scoping contract as PostgresStore.

    `calls` records every method invoked so tests can assert that unauthenticated requests
    never reach the store.
    """

    def __init__(self) -> None:
        self.accounts: Dict[str, Account] = {}
        self.tasks: Dict[int, Task] = {}
        self.calls: List[str] = []
        self._next_account_id = 1
        self._next_task_id = 1

    def create_account(self, email: str, password_hash: str) -> Account:
        self.calls.append("create_account")
        if email in self.accounts:
            raise DuplicateEmailError(email)
        account = Account(
            id=self._next_account_id, email=email, password_hash=password_hash, created_at=datetime.now(timezone.utc)
        )
        self._next_account_id += 1
        self.accounts[email] = account
        return account

    def get_account_by_email(self, email: str) -> Optional[Account]:
        self.calls.append("get_account_by_email")
        return self.accounts.get(email)

    def list_tasks(self, account_id: int, status: Optional[str] = None) -> List[Task]:
        self.calls.append("list_tasks")
        rows = [t for t in self.tasks.values() if t.account_id == account_id]
        if status:
            rows = [t for t in rows if t.status == status]
        return sorted(rows, key=lambda t: t.id, reverse=True)

    def create_task(self, account_id: int, title: str) -> Task:
        self.calls.append("create_task")
        task = Task(id=self._next_task_id, account_id=account_id, title=title, created_at=datetime.now(timezone.utc))
        self._next_task_id += 1
        self.tasks[task.id] = task
        return task

    def update_task(
        self, account_id: int, task_id: int, *, title: Optional[str] = None, status: Optional[str] = None
    ) -> Optional[Task]:
        self.calls.append("update_task")
        task = self.tasks.get(task_id)
        if task is None or task.account_id != account_id:
            return None
        changes = {}
        if title is not None:
            changes["title"] = title
        if status is not None:
            changes["status"] = status
        updated = task.model_copy(update=changes)
        self.tasks[task_id] = updated
        return updated

    def delete_task(self, account_id: int, task_id: int) -> bool:
        self.calls.append("delete_task")
        task = self.tasks.get(task_id)
        if task is None or task.account_id != account_id:
            return False
        del self.tasks[task_id]
        return True


@pytest.fixture(autouse=True)
def _clear_auth_config_cache():
    load_auth_config.cache_clear()
    yield
    load_auth_config.cache_clear()


@pytest.fixture
def auth_cfg() -> AuthConfig:
    # Lowest bcrypt cost keeps the suite fast.
    return AuthConfig(session_secret=TEST_SECRET, cookie_secure=False, bcrypt_rounds=4)


@pytest.fixture
def signer(auth_cfg: AuthConfig) -> SessionSigner:
    return SessionSigner(auth_cfg)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def app(auth_cfg: AuthConfig, store: InMemoryStore):
    return create_app(auth_cfg, store=store)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def register():
    """Register an account through the API; the client keeps the session cookie."""

    def _register(client: TestClient, email: str, password: str = "secret123") -> dict:
        r = client.post("/auth/register", json={"email": email, "password": password})
        assert r.status_code == 201, r.text
        return r.json()

    return _register
