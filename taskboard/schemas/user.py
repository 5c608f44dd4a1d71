"""
User schemas for form validation.
Separates internal models from input contracts using Pydantic.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator

from taskboard.models.user import UserRole

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_BYTES = 72


class UserCreate(BaseModel):
    """Schema for user registration."""

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN_LENGTH)
    role: UserRole = UserRole.USER

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("password", mode="after")
    @classmethod
    def validate_password_bytes(cls, v: str) -> str:
        """Keep passwords within what every supported hash scheme accepts."""
        if len(v.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
        return v


class UserLogin(BaseModel):
    """Schema for login; normalises the email the same way registration does."""

    email: EmailStr
    password: str = Field(min_length=1)
