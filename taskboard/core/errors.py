"""
Application exception types.

Input validation failures are reported as ``pydantic.ValidationError`` by the
request schemas; everything else the application raises on purpose lives here.
"""


class TaskboardError(Exception):
    """Base class for application errors."""


class DuplicateKeyError(TaskboardError):
    """A unique store constraint rejected the write."""

    def __init__(self, field: str, value: str):
        super().__init__(f"Duplicate value for {field}")
        self.field = field
        self.value = value


class InvalidAssertionError(TaskboardError):
    """An identity assertion could not be trusted."""


class InvalidSignatureError(InvalidAssertionError):
    """The assertion signature does not match the signing secret."""


class ExpiredAssertionError(InvalidAssertionError):
    """The assertion is past its expiry time."""


class MalformedAssertionError(InvalidAssertionError):
    """The assertion is not a token, or its claims are incomplete."""


class RedirectRequired(TaskboardError):
    """Stop the request and send the client elsewhere."""

    url = "/"

    def __init__(self, url: str | None = None):
        if url is not None:
            self.url = url
        super().__init__(self.url)


class LoginRequired(RedirectRequired):
    """No trusted identity is attached to the session."""

    url = "/login"


class AdminRequired(RedirectRequired):
    """The caller is authenticated but is not an administrator."""

    url = "/"
