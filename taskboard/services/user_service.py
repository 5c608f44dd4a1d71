"""
User service layer implementing the credential store.
Separates business logic from routes and database operations.
"""

from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from taskboard.core.errors import DuplicateKeyError
from taskboard.core.logging import get_logger
from taskboard.core.security import get_password_hash, verify_password
from taskboard.models.user import User, UserRole
from taskboard.schemas.token import AuthContext
from taskboard.schemas.user import UserCreate

logger = get_logger(__name__)


class UserService:
    """Service class for user-related operations."""

    @staticmethod
    def get_by_email(session: Session, email: str) -> Optional[User]:
        """
        Retrieve a user by email address.

        Args:
            session: Database session
            email: Email address to search for

        Returns:
            User if found, None otherwise
        """
        statement = select(User).where(User.email == email)
        return session.exec(statement).first()

    @staticmethod
    def create(session: Session, user_create: UserCreate, role: Optional[UserRole] = None) -> User:
        """
        Create a new user with hashed password.

        Args:
            session: Database session
            user_create: Validated registration data
            role: Overrides the role carried by ``user_create``

        Returns:
            Created user instance

        Raises:
            DuplicateKeyError: If the email is already registered
        """
        db_user = User(
            name=user_create.name,
            email=user_create.email,
            hashed_password=get_password_hash(user_create.password),
            role=role or user_create.role,
        )
        session.add(db_user)
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            logger.warning(f"Rejected duplicate registration for {user_create.email}")
            raise DuplicateKeyError("email", user_create.email) from e
        session.refresh(db_user)
        return db_user

    @staticmethod
    def authenticate(session: Session, email: str, password: str) -> Optional[User]:
        """
        Authenticate a user by email and password.

        Args:
            session: Database session
            email: User's email
            password: Plain text password

        Returns:
            User if authentication successful, None otherwise
        """
        if not email or not password:
            return None
        user = UserService.get_by_email(session, email)
        if not user:
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user

    @staticmethod
    def to_auth_context(user: User) -> AuthContext:
        """The identity fields that go into an assertion."""
        return AuthContext(id=user.id, name=user.name, role=user.role)
