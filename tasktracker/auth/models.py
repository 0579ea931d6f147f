from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Identity:
    """Caller identity decoded from a verified session token."""

    account_id: int
    email: str
    issued_at: int
    expires_at: int


@dataclass
class Account:
    """Account row stored in PostgreSQL."""

    id: int
    email: str
    password_hash: str
    created_at: Optional[datetime] = None
