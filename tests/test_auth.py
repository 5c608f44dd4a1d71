"""
Tests for registration, login, logout and the authorization gate.
"""

from datetime import timedelta

from fastapi.testclient import TestClient
from sqlmodel import Session, select

from taskboard.api.deps import ASSERTION_SESSION_KEY
from taskboard.core.config import Settings
from taskboard.db.session import get_session
from taskboard.main import app, create_app
from taskboard.models.user import User, UserRole
from taskboard.schemas.token import AuthContext


def _register(client: TestClient, token: str, **fields):
    data = {"name": "New User", "email": "newuser@example.com", "password": "newpassword123"}
    data.update(fields)
    data["csrf_token"] = token
    return client.post("/register", data=data, follow_redirects=False)


def test_register_user(client: TestClient, session: Session, get_csrf) -> None:
    """Test user registration."""
    response = _register(client, get_csrf(client, "/register"))
    assert response.status_code == 303
    assert response.headers["location"] == "/login"

    user = session.exec(select(User).where(User.email == "newuser@example.com")).first()
    assert user is not None
    assert user.name == "New User"
    assert user.role == UserRole.USER
    assert user.hashed_password != "newpassword123"


def test_register_invalid_email(client: TestClient, session: Session, get_csrf) -> None:
    response = _register(client, get_csrf(client, "/register"), email="not-an-email")
    assert response.status_code == 200
    assert 'data-field="email"' in response.text
    assert session.exec(select(User)).first() is None


def test_register_short_password(client: TestClient, session: Session, get_csrf) -> None:
    response = _register(client, get_csrf(client, "/register"), password="12345")
    assert response.status_code == 200
    assert 'data-field="password"' in response.text
    assert session.exec(select(User)).first() is None


def test_register_missing_name(client: TestClient, session: Session, get_csrf) -> None:
    response = _register(client, get_csrf(client, "/register"), name="   ")
    assert response.status_code == 200
    assert 'data-field="name"' in response.text


def test_register_duplicate_email(
    client: TestClient, session: Session, test_user: User, get_csrf
) -> None:
    """Test that duplicate email registration fails."""
    response = _register(client, get_csrf(client, "/register"), email=test_user.email)
    assert response.status_code == 200
    assert "Registration failed" in response.text

    users = session.exec(select(User).where(User.email == test_user.email)).all()
    assert len(users) == 1


def test_register_ignores_role_by_default(client: TestClient, session: Session, get_csrf) -> None:
    response = _register(client, get_csrf(client, "/register"), role="admin")
    assert response.status_code == 303

    user = session.exec(select(User).where(User.email == "newuser@example.com")).one()
    assert user.role == UserRole.USER


def test_register_requires_csrf(client: TestClient, session: Session) -> None:
    response = _register(client, "forged-token")
    assert response.status_code == 403
    assert session.exec(select(User)).first() is None


def test_login_success(client: TestClient, test_user: User, login_as, read_session) -> None:
    """Test successful login."""
    response = login_as(client, "test@example.com", "testpassword123")
    assert response.status_code == 303
    assert response.headers["location"] == "/"

    record = read_session(client)
    assert record is not None
    identity = app.state.issuer.verify(record[ASSERTION_SESSION_KEY])
    assert identity == AuthContext(id=test_user.id, name="Test User", role=UserRole.USER)


def test_login_assertion_carries_admin_role(client: TestClient, test_admin: User, login_as, read_session) -> None:
    response = login_as(client, "admin@example.com", "adminpassword123")
    assert response.status_code == 303

    identity = app.state.issuer.verify(read_session(client)[ASSERTION_SESSION_KEY])
    assert identity.role == UserRole.ADMIN
    assert identity.is_admin


def test_login_wrong_password(client: TestClient, test_user: User, login_as, read_session) -> None:
    """Test login with wrong password."""
    response = login_as(client, "test@example.com", "wrongpassword")
    assert response.status_code == 200
    assert "Invalid credentials" in response.text
    assert ASSERTION_SESSION_KEY not in (read_session(client) or {})


def test_login_nonexistent_user(client: TestClient, login_as) -> None:
    """Test login with non-existent user."""
    response = login_as(client, "nonexistent@example.com", "password123")
    assert response.status_code == 200
    assert "Invalid credentials" in response.text


def test_login_requires_csrf(client: TestClient, test_user: User) -> None:
    client.get("/login")
    response = client.post(
        "/login",
        data={"email": "test@example.com", "password": "testpassword123"},
        follow_redirects=False,
    )
    assert response.status_code == 403


def test_login_with_mixed_case_domain(client: TestClient, get_csrf, login_as) -> None:
    """An address accepted at registration logs in when typed the same way."""
    response = _register(client, get_csrf(client, "/register"), email="ann@Example.COM", password="secret1")
    assert response.status_code == 303

    response = login_as(client, "ann@Example.COM", "secret1")
    assert response.status_code == 303
    assert response.headers["location"] == "/"


def test_login_malformed_email_is_invalid_credentials(client: TestClient, login_as) -> None:
    response = login_as(client, "not-an-email", "password123")
    assert response.status_code == 200
    assert "Invalid credentials" in response.text


def test_login_issues_a_new_session_id(client: TestClient, test_user: User, get_csrf) -> None:
    cookie_name = app.state.settings.SESSION_COOKIE_NAME
    token = get_csrf(client, "/login")
    old_session_id = client.cookies.get(cookie_name)
    assert old_session_id

    response = client.post(
        "/login",
        data={"email": "test@example.com", "password": "testpassword123", "csrf_token": token},
        follow_redirects=False,
    )
    assert response.status_code == 303

    new_session_id = client.cookies.get(cookie_name)
    assert new_session_id and new_session_id != old_session_id
    assert app.state.session_store.load(old_session_id) is None

    record = app.state.session_store.load(new_session_id)
    assert ASSERTION_SESSION_KEY in record
    assert record["csrf_token"] == token


def test_session_cookie_holds_only_an_opaque_id(user_client: TestClient) -> None:
    cookie = user_client.cookies.get(app.state.settings.SESSION_COOKIE_NAME)
    assert cookie
    assert "." not in cookie  # not a JWT
    assert "Test User" not in cookie


def test_protected_routes_redirect_anonymous(client: TestClient) -> None:
    for path in ("/", "/tasks/new", "/admin"):
        response = client.get(path, follow_redirects=False)
        assert response.status_code == 303, path
        assert response.headers["location"] == "/login"


def test_public_routes_reachable_anonymously(client: TestClient) -> None:
    for path in ("/login", "/register", "/static/style.css"):
        assert client.get(path).status_code == 200, path


def test_logout_destroys_session(user_client: TestClient, read_session) -> None:
    assert user_client.get("/", follow_redirects=False).status_code == 200
    old_session_id = user_client.cookies.get(app.state.settings.SESSION_COOKIE_NAME)

    response = user_client.get("/logout", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"
    assert app.state.session_store.load(old_session_id) is None

    response = user_client.get("/", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"


def test_tampered_assertion_redirects_to_login(user_client: TestClient, read_session) -> None:
    session_id = user_client.cookies.get(app.state.settings.SESSION_COOKIE_NAME)
    record = read_session(user_client)
    header, payload, _signature = record[ASSERTION_SESSION_KEY].split(".")
    record[ASSERTION_SESSION_KEY] = f"{header}.{payload}.forged"
    app.state.session_store.save(session_id, record)

    response = user_client.get("/", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"


def test_expired_assertion_redirects_to_login(user_client: TestClient, test_user: User, read_session) -> None:
    session_id = user_client.cookies.get(app.state.settings.SESSION_COOKIE_NAME)
    record = read_session(user_client)
    identity = AuthContext(id=test_user.id, name=test_user.name, role=test_user.role)
    record[ASSERTION_SESSION_KEY] = app.state.issuer.issue(identity, expires_delta=timedelta(minutes=-5))
    app.state.session_store.save(session_id, record)

    response = user_client.get("/", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"


def test_unknown_session_cookie_is_treated_as_anonymous(client: TestClient) -> None:
    stranger = TestClient(app, cookies={app.state.settings.SESSION_COOKIE_NAME: "no-such-session"})
    response = stranger.get("/", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/login"


def test_register_with_role_selection_enabled(session: Session, get_csrf) -> None:
    settings = Settings(
        SECRET_KEY="role-selection-secret",
        DATABASE_URL="sqlite://",
        DISABLE_BOOTSTRAP_USERS=True,
        ALLOW_ROLE_SELECTION=True,
        _env_file=None,
    )  # type: ignore[call-arg]
    role_app = create_app(settings)
    role_app.dependency_overrides[get_session] = lambda: session

    with TestClient(role_app) as role_client:
        page = role_client.get("/register")
        assert 'name="role"' in page.text

        response = _register(role_client, get_csrf(role_client, "/register"), role="admin")
        assert response.status_code == 303

    user = session.exec(select(User).where(User.email == "newuser@example.com")).one()
    assert user.role == UserRole.ADMIN
