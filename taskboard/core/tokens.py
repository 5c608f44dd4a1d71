"""
Signed identity assertions.

An assertion is an HS256 JWT carrying the user id, display name and role with
an explicit expiry. It is kept inside the server-side session, never in the
cookie itself.
"""

from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError

from taskboard.core.errors import ExpiredAssertionError, InvalidSignatureError, MalformedAssertionError
from taskboard.schemas.token import AssertionPayload, AuthContext


class IdentityAssertionIssuer:
    """Mints and verifies identity assertions with a single signing secret."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24):
        if not secret_key:
            raise ValueError("A signing secret is required")
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.expires_delta = timedelta(minutes=expire_minutes)

    def issue(self, identity: AuthContext, expires_delta: timedelta | None = None) -> str:
        """
        Create a signed assertion for an identity.

        Args:
            identity: The verified user identity
            expires_delta: Optional custom lifetime

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta if expires_delta is not None else self.expires_delta)
        claims = {
            "sub": identity.id,
            "name": identity.name,
            "role": identity.role.value,
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(claims, self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> AuthContext:
        """
        Recover the identity from an assertion.

        Raises:
            MalformedAssertionError: The value is not a JWT or lacks identity claims
            ExpiredAssertionError: The assertion is past its expiry
            InvalidSignatureError: The signature does not verify
        """
        if not isinstance(token, str) or not token:
            raise MalformedAssertionError("Empty assertion")

        try:
            jwt.get_unverified_claims(token)
        except JWTError as e:
            raise MalformedAssertionError(str(e)) from e

        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError as e:
            raise ExpiredAssertionError(str(e)) from e
        except JWTError as e:
            raise InvalidSignatureError(str(e)) from e

        try:
            payload = AssertionPayload.model_validate(claims)
        except ValidationError as e:
            raise MalformedAssertionError("Assertion is missing identity claims") from e

        return AuthContext(id=payload.sub, name=payload.name, role=payload.role)
