"""Session tokens and password hashing."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import Settings

PASSWORD_MIN_LENGTH = 8

pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be decoded or lacks required claims."""


def hash_password(password: str) -> str:
    return pwd.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd.verify(password, hashed)


def create_access_token(settings: Settings, *, user_id: str, email: str, role: str) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "sub": user_id,
            "email": email,
            "role": role,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(hours=settings.access_token_hours)).timestamp()),
        },
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def verify_token(settings: Settings, token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc
    if not payload.get("sub") or not payload.get("role"):
        raise InvalidTokenError("Token is missing subject or role")
    return payload


__all__ = [
    "PASSWORD_MIN_LENGTH",
    "InvalidTokenError",
    "create_access_token",
    "hash_password",
    "verify_password",
    "verify_token",
]
