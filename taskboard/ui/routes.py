"""
UI routes for the task tracker.
Handles page rendering and form posts.
"""

from datetime import datetime
from pathlib import Path
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from sqlmodel import Session
from starlette.status import HTTP_303_SEE_OTHER

from taskboard.api.deps import (
    ASSERTION_SESSION_KEY,
    AdminUser,
    AuthorizedUser,
    CsrfProtected,
    get_app_settings,
    get_issuer,
)
from taskboard.core.config import Settings
from taskboard.core.csrf import get_csrf_token
from taskboard.core.errors import DuplicateKeyError
from taskboard.core.logging import get_logger
from taskboard.core.sessions import get_request_session
from taskboard.core.tokens import IdentityAssertionIssuer
from taskboard.db.session import get_session
from taskboard.models.task import TaskStatus
from taskboard.models.user import UserRole
from taskboard.schemas.task import FieldError, TaskCreate, TaskFilters, field_errors
from taskboard.schemas.user import UserCreate, UserLogin
from taskboard.services.task_service import TaskService
from taskboard.services.user_service import UserService

logger = get_logger(__name__)

router = APIRouter()

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

DbSession = Annotated[Session, Depends(get_session)]


def _fmt_datetime(value) -> str:
    """Format timestamps for display."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M")
    return str(value)


templates.env.filters["fmt_datetime"] = _fmt_datetime


# ========== Helper Functions ==========

def get_template_context(request: Request, **kwargs) -> dict:
    """Base template context: CSRF token, current identity and common data."""
    return {
        "csrf_token": get_csrf_token(get_request_session(request)),
        "user": getattr(request.state, "user", None),
        "current_year": datetime.now().year,
        **kwargs,
    }


def render(request: Request, view: str, **kwargs) -> HTMLResponse:
    """Render ``templates/<view>.html``."""
    return templates.TemplateResponse(request, f"{view}.html", get_template_context(request, **kwargs))


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=HTTP_303_SEE_OTHER)


# ========== Page Routes ==========

@router.get("/", response_class=HTMLResponse)
def home_page(
    request: Request,
    context: AuthorizedUser,
    session: DbSession,
    status: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
):
    """List the caller's own tasks."""
    filters = TaskFilters(status=status, search=search, sort=sort)
    tasks = TaskService(session).query_tasks(context, filters)
    return render(
        request,
        "index",
        tasks=tasks,
        filters=filters,
        sort_order=filters.sort_order,
        statuses=list(TaskStatus),
    )


@router.get("/admin", response_class=HTMLResponse)
def admin_page(
    request: Request,
    context: AdminUser,
    session: DbSession,
    status: Optional[str] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
):
    """List every user's tasks with owner names."""
    filters = TaskFilters(status=status, search=search, sort=sort)
    rows = TaskService(session).list_with_owners(context, filters)
    return render(
        request,
        "admin",
        rows=rows,
        filters=filters,
        sort_order=filters.sort_order,
        statuses=list(TaskStatus),
    )


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request):
    return render(request, "login")


@router.get("/register", response_class=HTMLResponse)
def register_page(request: Request, settings: Annotated[Settings, Depends(get_app_settings)]):
    return render(
        request,
        "register",
        allow_role_selection=settings.ALLOW_ROLE_SELECTION,
        roles=list(UserRole),
    )


@router.get("/tasks/new", response_class=HTMLResponse)
def new_task_page(request: Request, context: AuthorizedUser):
    return render(request, "new_task")


@router.get("/logout")
def logout(request: Request):
    """Destroy the whole session and return to the login page."""
    get_request_session(request).destroy()
    return redirect("/login")


# ========== Form Posts ==========

@router.post("/register", response_class=HTMLResponse, dependencies=[CsrfProtected])
def register(
    request: Request,
    session: DbSession,
    settings: Annotated[Settings, Depends(get_app_settings)],
    name: Annotated[str, Form()] = "",
    email: Annotated[str, Form()] = "",
    password: Annotated[str, Form()] = "",
    role: Annotated[Optional[str], Form()] = None,
):
    """
    Create an account and send the user to the login page.
    Invalid input or a taken email re-renders the form.
    """
    form = {"name": name, "email": email}
    page = {
        "allow_role_selection": settings.ALLOW_ROLE_SELECTION,
        "roles": list(UserRole),
        "form": form,
    }

    data = {"name": name, "email": email, "password": password}
    if settings.ALLOW_ROLE_SELECTION and role:
        data["role"] = role

    try:
        user_in = UserCreate(**data)
    except ValidationError as e:
        return render(request, "register", errors=field_errors(e), **page)

    try:
        user = UserService.create(session, user_in)
    except DuplicateKeyError:
        return render(
            request,
            "register",
            errors=[FieldError(field="form", message="Registration failed")],
            **page,
        )

    logger.info(f"New user registered: {user.email} (ID: {user.id})")
    return redirect("/login")


@router.post("/login", response_class=HTMLResponse, dependencies=[CsrfProtected])
def login(
    request: Request,
    session: DbSession,
    issuer: Annotated[IdentityAssertionIssuer, Depends(get_issuer)],
    email: Annotated[str, Form()] = "",
    password: Annotated[str, Form()] = "",
):
    """
    Verify credentials and store a signed identity assertion in a fresh session.
    The email is normalised exactly as at registration before the lookup.
    """
    try:
        credentials = UserLogin(email=email, password=password)
    except ValidationError:
        user = None
    else:
        user = UserService.authenticate(session, email=credentials.email, password=credentials.password)

    if not user:
        logger.warning(f"Failed login attempt for email: {email}")
        return render(request, "login", error="Invalid credentials", form={"email": email})

    web_session = get_request_session(request)
    web_session.rotate()
    web_session[ASSERTION_SESSION_KEY] = issuer.issue(UserService.to_auth_context(user))
    logger.info(f"User logged in: {user.email} (ID: {user.id})")
    return redirect("/")


@router.post("/tasks", response_class=HTMLResponse, dependencies=[CsrfProtected])
def create_task(
    request: Request,
    context: AuthorizedUser,
    session: DbSession,
    title: Annotated[str, Form()] = "",
    description: Annotated[Optional[str], Form()] = None,
):
    """Create a task owned by the caller."""
    try:
        task_in = TaskCreate(title=title, description=description)
    except ValidationError as e:
        return render(
            request,
            "new_task",
            errors=field_errors(e),
            form={"title": title, "description": description or ""},
        )

    TaskService(session).create_task(context, task_in)
    return redirect("/")


@router.post("/tasks/complete/{task_id}", dependencies=[CsrfProtected])
def complete_task(task_id: str, context: AuthorizedUser, session: DbSession):
    """Mark a task completed. Ownership is not checked."""
    TaskService(session).complete_task(task_id, actor=context)
    return redirect("/")
