"""
Pytest configuration and fixtures.
Provides test database, client, and common test utilities.
"""

import os
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator

# Settings are read when the application module is imported.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DISABLE_BOOTSTRAP_USERS"] = "true"
os.environ["SESSION_BACKEND"] = "memory"

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from taskboard.db.session import get_session, register_sqlite_functions
from taskboard.main import app
from taskboard.models.task import Task, TaskStatus
from taskboard.models.user import User, UserRole
from taskboard.schemas.user import UserCreate
from taskboard.services.user_service import UserService

CSRF_RE = re.compile(r'name="csrf_token" value="([^"]+)"')


def extract_csrf(html: str) -> str:
    """Pull the anti-forgery token out of a rendered form."""
    match = CSRF_RE.search(html)
    assert match, "form did not include a CSRF token"
    return match.group(1)


def csrf_for(client: TestClient, path: str = "/login") -> str:
    """GET a form page and return its CSRF token (creates the session)."""
    response = client.get(path)
    assert response.status_code == 200
    return extract_csrf(response.text)


def login(client: TestClient, email: str, password: str):
    """Submit the login form and return the raw (unfollowed) response."""
    token = csrf_for(client, "/login")
    return client.post(
        "/login",
        data={"email": email, "password": password, "csrf_token": token},
        follow_redirects=False,
    )


@pytest.fixture(name="session")
def session_fixture() -> Generator[Session, None, None]:
    """
    Create a test database session.
    Uses an in-memory SQLite database for fast tests.
    """
    engine = register_sqlite_functions(
        create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    )
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session) -> Generator[TestClient, None, None]:
    """
    Create a test client with dependency overrides.
    """

    def get_session_override() -> Generator[Session, None, None]:
        yield session

    app.dependency_overrides[get_session] = get_session_override

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(name="test_user")
def test_user_fixture(session: Session) -> User:
    """
    Create a test user.
    """
    user_create = UserCreate(
        name="Test User",
        email="test@example.com",
        password="testpassword123",
    )
    return UserService.create(session, user_create)


@pytest.fixture(name="other_user")
def other_user_fixture(session: Session) -> User:
    user_create = UserCreate(
        name="Other User",
        email="other@example.com",
        password="otherpassword123",
    )
    return UserService.create(session, user_create)


@pytest.fixture(name="test_admin")
def test_admin_fixture(session: Session) -> User:
    """
    Create a test admin user.
    """
    user_create = UserCreate(
        name="Admin User",
        email="admin@example.com",
        password="adminpassword123",
    )
    return UserService.create(session, user_create, role=UserRole.ADMIN)


@pytest.fixture(name="user_client")
def user_client_fixture(client: TestClient, test_user: User) -> TestClient:
    """A client logged in as the regular test user."""
    response = login(client, "test@example.com", "testpassword123")
    assert response.status_code == 303
    return client


@pytest.fixture(name="admin_client")
def admin_client_fixture(client: TestClient, test_admin: User) -> TestClient:
    """A client logged in as the admin."""
    response = login(client, "admin@example.com", "adminpassword123")
    assert response.status_code == 303
    return client


@pytest.fixture(name="make_task")
def make_task_fixture(session: Session) -> Callable[..., Task]:
    """
    Insert a task directly, with an explicit creation time when ordering matters.
    """
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _make(owner: User, title: str, minutes: int = 0, status: TaskStatus = TaskStatus.PENDING) -> Task:
        task = Task(
            title=title,
            status=status,
            user_id=owner.id,
            user_name=owner.name,
            created_at=base + timedelta(minutes=minutes),
        )
        session.add(task)
        session.commit()
        session.refresh(task)
        return task

    return _make


@pytest.fixture(name="get_csrf")
def get_csrf_fixture() -> Callable[..., str]:
    """Callable returning the CSRF token rendered on a form page."""
    return csrf_for


@pytest.fixture(name="login_as")
def login_as_fixture() -> Callable[..., object]:
    """Callable that logs a client in through the login form."""
    return login


@pytest.fixture(name="read_session")
def read_session_fixture() -> Callable[[TestClient], dict | None]:
    """Callable returning the server-side record behind a client's session cookie."""

    def _read(client: TestClient) -> dict | None:
        session_id = client.cookies.get(app.state.settings.SESSION_COOKIE_NAME)
        if not session_id:
            return None
        return app.state.session_store.load(session_id)

    return _read
