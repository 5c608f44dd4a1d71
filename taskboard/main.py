"""
Main FastAPI application entry point.
Configures the application, middleware, and routes.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from redis import Redis, RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel
from starlette.status import HTTP_303_SEE_OTHER, HTTP_500_INTERNAL_SERVER_ERROR

from taskboard.api.routes import health
from taskboard.core.config import Settings, get_settings
from taskboard.core.errors import DuplicateKeyError, RedirectRequired
from taskboard.core.logging import get_logger, setup_logging
from taskboard.core.sessions import MemorySessionStore, RedisSessionStore, ServerSessionMiddleware, SessionStore
from taskboard.core.tokens import IdentityAssertionIssuer
from taskboard.db.session import build_engine
from taskboard.models.user import UserRole
from taskboard.schemas.user import UserCreate
from taskboard.services.user_service import UserService
from taskboard.ui import routes as ui_routes

logger = get_logger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"


def build_session_store(settings: Settings) -> SessionStore:
    """Pick the session backend named by ``SESSION_BACKEND``."""
    if settings.SESSION_BACKEND == "redis":
        redis_conn = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=settings.STORE_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.STORE_TIMEOUT_SECONDS,
        )
        logger.info(f"Using Redis session store at {settings.REDIS_HOST}:{settings.REDIS_PORT}")
        return RedisSessionStore(redis_conn, ttl_seconds=settings.SESSION_MAX_AGE_SECONDS)

    logger.info("Using in-memory session store")
    return MemorySessionStore(ttl_seconds=settings.SESSION_MAX_AGE_SECONDS)


def bootstrap_superuser(app: FastAPI) -> None:
    """Create the first administrator if it does not exist yet."""
    settings: Settings = app.state.settings
    with Session(app.state.engine) as session:
        if UserService.get_by_email(session, settings.FIRST_SUPERUSER_EMAIL):
            return

        logger.info("Creating first superuser...")
        try:
            superuser = UserCreate(
                name=settings.FIRST_SUPERUSER_NAME,
                email=settings.FIRST_SUPERUSER_EMAIL,
                password=settings.FIRST_SUPERUSER_PASSWORD,
            )
            UserService.create(session, superuser, role=UserRole.ADMIN)
            logger.info(f"Superuser created: {settings.FIRST_SUPERUSER_EMAIL}")
        except (ValueError, DuplicateKeyError) as e:
            logger.error(f"Failed to create superuser: {e}")
            logger.warning("Continuing without superuser. The admin page will be unreachable.")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.
    Runs startup and shutdown logic.
    """
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")

    logger.info("Creating database tables...")
    SQLModel.metadata.create_all(app.state.engine)

    if not settings.DISABLE_BOOTSTRAP_USERS:
        bootstrap_superuser(app)
    else:
        logger.info("User bootstrapping disabled (DISABLE_BOOTSTRAP_USERS=true)")

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    app.state.engine.dispose()


async def redirect_handler(request: Request, exc: RedirectRequired) -> RedirectResponse:
    """Gate failures become plain redirects with no detail."""
    return RedirectResponse(url=exc.url, status_code=HTTP_303_SEE_OTHER)


async def store_error_handler(request: Request, exc: Exception) -> HTMLResponse:
    """Fail the single request when a backing store misbehaves."""
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return HTMLResponse("<h1>Internal Server Error</h1>", status_code=HTTP_500_INTERNAL_SERVER_ERROR)


def create_app(settings: Settings) -> FastAPI:
    """
    Build the application around an explicit settings object.

    Args:
        settings: Immutable configuration for this process

    Returns:
        Configured FastAPI application
    """
    setup_logging(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = build_engine(settings)
    app.state.issuer = IdentityAssertionIssuer(
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        expire_minutes=settings.ASSERTION_EXPIRE_MINUTES,
    )
    app.state.session_store = build_session_store(settings)

    app.add_middleware(
        ServerSessionMiddleware,
        store=app.state.session_store,
        cookie_name=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        https_only=settings.SESSION_COOKIE_SECURE,
    )

    app.add_exception_handler(RedirectRequired, redirect_handler)
    app.add_exception_handler(SQLAlchemyError, store_error_handler)
    app.add_exception_handler(RedisError, store_error_handler)

    app.include_router(ui_routes.router, tags=["UI"])
    app.include_router(health.router)

    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    return app


app = create_app(get_settings())


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings: Settings = app.state.settings
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
