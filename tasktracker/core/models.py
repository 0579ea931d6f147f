"""Task-tracker domain models shared by the store and the API."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


STATUS_FILTERS = ("all", TaskStatus.PENDING.value, TaskStatus.COMPLETED.value)


class Task(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: int
    account_id: int = Field(alias="accountId")
    title: str
    status: TaskStatus = TaskStatus.PENDING
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
