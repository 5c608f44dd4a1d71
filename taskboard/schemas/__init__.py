"""Pydantic schemas for request validation."""

from taskboard.schemas.task import AdminTaskRow, FieldError, TaskCreate, TaskFilters, field_errors
from taskboard.schemas.token import AssertionPayload, AuthContext
from taskboard.schemas.user import UserCreate, UserLogin

__all__ = [
    "AdminTaskRow",
    "AssertionPayload",
    "AuthContext",
    "FieldError",
    "TaskCreate",
    "TaskFilters",
    "UserCreate",
    "UserLogin",
    "field_errors",
]
