from __future__ import annotations

from typing import List, Optional, Protocol

from tasktracker.auth.models import Account
from tasktracker.core.models import Task


class DuplicateEmailError(Exception):
    """An account with this email already exists."""


class Store(Protocol):
    """
    Credential store interface.

    Every task operation takes the owning account id and must filter on it: rows owned by
    another account behave exactly like rows that do not exist.
    """

    def create_account(self, email: str, password_hash: str) -> Account:
        """Insert an account. Raises DuplicateEmailError if the email is taken."""

    def get_account_by_email(self, email: str) -> Optional[Account]:
        ...

    def list_tasks(self, account_id: int, status: Optional[str] = None) -> List[Task]:
        """Owner's tasks, newest first; `status=None` means all."""

    def create_task(self, account_id: int, title: str) -> Task:
        ...

    def update_task(
        self, account_id: int, task_id: int, *, title: Optional[str] = None, status: Optional[str] = None
    ) -> Optional[Task]:
        """Returns None when no row matched (absent or owned by someone else)."""

    def delete_task(self, account_id: int, task_id: int) -> bool:
        ...
