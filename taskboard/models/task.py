"""
Task model. Each task belongs to exactly one user.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlmodel import Field, SQLModel


class TaskStatus(str, Enum):
    """Task status enumeration. Transitions only go Pending -> Completed."""
    PENDING = "Pending"
    COMPLETED = "Completed"


class Task(SQLModel, table=True):
    """
    A to-do item.

    ``user_name`` is copied from the owner at creation time so listings do
    not need a join; it is not kept in sync afterwards.
    """
    __tablename__ = "tasks"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    title: str = Field(max_length=500)
    description: Optional[str] = None
    status: TaskStatus = Field(default=TaskStatus.PENDING, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    user_id: str = Field(foreign_key="users.id", index=True)
    user_name: Optional[str] = Field(default=None, max_length=255)
