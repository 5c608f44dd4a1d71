"""
Identity assertion schemas.
"""

from pydantic import BaseModel, ConfigDict

from taskboard.models.user import UserRole


class AuthContext(BaseModel):
    """Identity attached to a request once its assertion has been verified."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class AssertionPayload(BaseModel):
    """Claims carried by a signed identity assertion."""

    sub: str
    name: str
    role: UserRole
    iat: int
    exp: int
