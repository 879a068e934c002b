"""JWT helpers shared by the HTTP and websocket entry points."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from brokerdesk.core.settings import settings


class InvalidTokenError(ValueError):
    """Raised when a bearer token cannot be decoded into a subject."""


def create_access_token(user_id: str, extra_claims: dict[str, str] | None = None) -> str:
    """Create a JWT access token whose subject is the user identifier."""
    to_encode: dict[str, object] = {"sub": user_id}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


def decode_subject(token: str) -> str:
    """Return the ``sub`` claim of a valid token.

    Raises:
        InvalidTokenError: If the signature, expiry or subject is invalid.
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise InvalidTokenError("Could not validate credentials") from err

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise InvalidTokenError("Could not validate credentials")
    return subject
