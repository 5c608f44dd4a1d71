"""
Task schemas for form input and list queries.
"""
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from taskboard.models.task import Task


class TaskCreate(BaseModel):
    """Fields a user supplies when creating a task."""
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("description", mode="before")
    @classmethod
    def blank_description_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class TaskFilters(BaseModel):
    """
    Optional list filters taken from the query string.

    ``sort`` is kept as given; anything other than ``desc`` (or nothing)
    sorts oldest first.
    """
    status: Optional[str] = None
    search: Optional[str] = None
    sort: Optional[str] = None

    @property
    def sort_order(self) -> str:
        if not self.sort or self.sort == "desc":
            return "desc"
        return "asc"


@dataclass
class AdminTaskRow:
    """A task paired with its owner's current display name."""
    task: Task
    owner_name: Optional[str] = None

    @property
    def display_owner(self) -> str:
        return self.owner_name or self.task.user_name or "Unknown"


class FieldError(BaseModel):
    """One validation message shown next to a form."""
    field: str
    message: str


def field_errors(exc) -> List[FieldError]:
    """Flatten a pydantic ``ValidationError`` into form messages."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc") or ("form",)
        errors.append(FieldError(field=str(loc[-1]), message=err.get("msg", "Invalid value")))
    return errors
