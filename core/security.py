"""
Password hashing, password policy and JWT access tokens
"""
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import jwt

from core.config import get_settings

BCRYPT_ROUNDS = 12

# (predicate, message) pairs checked after the length rule
PASSWORD_RULES = (
    (str.isupper, "Password must contain at least one uppercase letter"),
    (str.islower, "Password must contain at least one lowercase letter"),
    (str.isdigit, "Password must contain at least one digit"),
)


def hash_password(password: str) -> str:
    """Return the bcrypt hash of password as text"""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Check plain_password against a stored bcrypt hash. A malformed hash
    counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"), hashed_password.encode("utf-8")
        )
    except (ValueError, AttributeError):
        return False


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """
    Sign a JWT access token carrying data (typically {"sub": user_id}).
    Tokens expire after ACCESS_TOKEN_EXPIRE_MINUTES unless expires_delta
    is given.
    """
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    claims = {**data, "exp": issued_at + expires_delta, "iat": issued_at, "type": "access"}
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    """
    Decode and validate a JWT token

    Raises:
        JWTError: If token is invalid or expired
    """
    settings = get_settings()
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


def validate_password_strength(password: str) -> tuple[bool, str | None]:
    """
    Validate password meets security requirements

    Returns:
        Tuple of (is_valid, error_message)
    """
    min_length = get_settings().PASSWORD_MIN_LENGTH
    if len(password) < min_length:
        return False, f"Password must be at least {min_length} characters"

    for predicate, message in PASSWORD_RULES:
        if not any(predicate(c) for c in password):
            return False, message

    return True, None
