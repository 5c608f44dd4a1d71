"""
API dependencies for FastAPI dependency injection.
Provides the authorization gate, the admin role gate and the CSRF guard.
"""

from typing import Annotated

from fastapi import Depends, Form, HTTPException, Request, status

from taskboard.core.config import Settings
from taskboard.core.csrf import csrf_token_matches
from taskboard.core.errors import AdminRequired, InvalidAssertionError, LoginRequired
from taskboard.core.logging import get_logger
from taskboard.core.sessions import get_request_session
from taskboard.core.tokens import IdentityAssertionIssuer
from taskboard.schemas.token import AuthContext

logger = get_logger(__name__)

ASSERTION_SESSION_KEY = "assertion"


def get_app_settings(request: Request) -> Settings:
    """The settings object the application was built with."""
    return request.app.state.settings


def get_issuer(request: Request) -> IdentityAssertionIssuer:
    """The process-wide identity assertion issuer."""
    return request.app.state.issuer


def get_auth_context(
    request: Request,
    issuer: Annotated[IdentityAssertionIssuer, Depends(get_issuer)],
) -> AuthContext:
    """
    Dependency to recover the caller's identity from the session.

    A missing assertion and one that fails verification both end in the
    same redirect to the login page.

    Args:
        request: Incoming request carrying ``state.session``
        issuer: Assertion verifier

    Returns:
        The verified authorization context

    Raises:
        LoginRequired: If no trusted identity is present
    """
    session = get_request_session(request)
    token = session.get(ASSERTION_SESSION_KEY)
    if not token:
        logger.debug(f"No identity in session for {request.url.path}")
        raise LoginRequired()

    try:
        context = issuer.verify(token)
    except InvalidAssertionError as e:
        logger.debug(f"Rejected assertion ({type(e).__name__}) for {request.url.path}")
        raise LoginRequired() from e

    request.state.user = context
    return context


def get_admin_context(
    context: Annotated[AuthContext, Depends(get_auth_context)],
) -> AuthContext:
    """
    Dependency to ensure the current identity is an admin.

    Raises:
        AdminRequired: If the caller is not an admin
    """
    if not context.is_admin:
        logger.warning(f"Non-admin user {context.id} attempted admin access")
        raise AdminRequired()
    return context


def require_csrf(
    request: Request,
    csrf_token: Annotated[str, Form()] = "",
) -> None:
    """
    Dependency that rejects form posts without the session's CSRF token.

    Raises:
        HTTPException: 403 if the token is missing or does not match
    """
    if not csrf_token_matches(get_request_session(request), csrf_token):
        logger.warning(f"CSRF validation failed for {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid CSRF token",
        )


AuthorizedUser = Annotated[AuthContext, Depends(get_auth_context)]
AdminUser = Annotated[AuthContext, Depends(get_admin_context)]
CsrfProtected = Depends(require_csrf)
