"""
Authentication dependencies for protecting endpoints
"""
from typing import Annotated
import uuid

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from core.deps import SessionDep
from core.errors import AuthError, ForbiddenError
from core.security import decode_token
from api.auth.models import User, UserRole
from api.auth.services import get_user_by_id

# OAuth2 scheme for token extraction
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

# Optional OAuth2 scheme (doesn't raise error if no token)
oauth2_scheme_optional = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/login",
    auto_error=False
)


def _user_id_from_token(token: str) -> uuid.UUID | None:
    try:
        payload = decode_token(token)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            return None
        return uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        return None


def get_current_user(
    session: SessionDep,
    token: Annotated[str, Depends(oauth2_scheme)]
) -> User:
    """
    Get current authenticated user from JWT token

    Raises:
        AuthError: If token is invalid or user not found
    """
    user_id = _user_id_from_token(token)
    if user_id is None:
        raise AuthError("Invalid token")

    user = get_user_by_id(session, user_id)
    if user is None or not user.is_active:
        raise AuthError("User not found")

    return user


def get_current_admin(
    current_user: Annotated[User, Depends(get_current_user)]
) -> User:
    """
    Raises:
        ForbiddenError: If the user does not hold the admin role
    """
    if current_user.role != UserRole.ADMIN:
        raise ForbiddenError("Insufficient permissions")
    return current_user


def optional_current_user(
    session: SessionDep,
    token: Annotated[str | None, Depends(oauth2_scheme_optional)]
) -> User | None:
    """
    Get current user if a valid token is provided, None otherwise
    """
    if token is None:
        return None

    user_id = _user_id_from_token(token)
    if user_id is None:
        return None
    return get_user_by_id(session, user_id)


# Type aliases for cleaner endpoint signatures
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentAdmin = Annotated[User, Depends(get_current_admin)]
OptionalUser = Annotated[User | None, Depends(optional_current_user)]
