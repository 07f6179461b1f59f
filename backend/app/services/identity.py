"""Password hashing and access tokens.

Only this module knows about credentials; everything else receives the
verified user id.
"""
from datetime import timedelta

import bcrypt
from jose import JWTError, jwt

from app.config import get_settings
from app.services.deadlines import utcnow

settings = get_settings()


class InvalidTokenError(Exception):
    """Access token is missing, malformed, expired or of the wrong type."""


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        hashed_password.encode("utf-8"),
    )


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(),
    ).decode("utf-8")


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token for a user."""
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    claims = {"sub": user_id, "exp": expire, "type": "access"}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> str:
    """Return the user id carried by a valid access token."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as exc:
        raise InvalidTokenError("Invalid or expired token") from exc

    if payload.get("type") != "access":
        raise InvalidTokenError("Invalid token type")
    user_id = payload.get("sub")
    if not user_id:
        raise InvalidTokenError("Invalid token")
    return user_id
