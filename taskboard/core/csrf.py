"""
Per-session anti-forgery tokens for form posts.
"""

import secrets
from collections.abc import MutableMapping
from typing import Any, Optional

CSRF_SESSION_KEY = "csrf_token"
CSRF_FORM_FIELD = "csrf_token"


def get_csrf_token(session: MutableMapping[str, Any]) -> str:
    """Return the session's CSRF token, creating one if missing."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token


def csrf_token_matches(session: MutableMapping[str, Any], submitted: Optional[str]) -> bool:
    expected = session.get(CSRF_SESSION_KEY)
    if not expected or not submitted:
        return False
    return secrets.compare_digest(str(expected), str(submitted))
