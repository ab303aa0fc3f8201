"""
Authentication service layer for user management and authentication
"""
from datetime import datetime, timezone
import uuid

from sqlmodel import Session, select

from api.auth.models import AuthPayload, User, UserPublic, UserRegister
from core.errors import AuthError, ConflictError, ValidationError
from core.logger import logger
from core.security import (
    create_access_token, hash_password, validate_password_strength,
    verify_password
)


def authenticate_user(
    session: Session, email: str, password: str
) -> User | None:
    """
    Authenticate user with email and password

    Args:
        session: Database session
        email: User email
        password: Plain text password

    Returns:
        User object if authentication successful, None otherwise
    """
    user = get_user_by_email(session, email)
    if not user or not user.is_active:
        return None

    if not verify_password(password, user.hashed_password):
        return None

    user.last_login = datetime.now(timezone.utc)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def register_user(session: Session, user_data: UserRegister) -> User:
    """
    Register a new user

    Raises:
        ValidationError: If the password is too weak
        ConflictError: If email or username already exists
    """
    is_valid, error_msg = validate_password_strength(user_data.password)
    if not is_valid:
        raise ValidationError(error_msg)

    if get_user_by_email(session, user_data.email):
        raise ConflictError("User already exists")

    statement = select(User).where(User.username == user_data.username)
    if session.exec(statement).first():
        raise ConflictError("Username already taken")

    user = User(
        email=user_data.email,
        username=user_data.username,
        hashed_password=hash_password(user_data.password),
        full_name=user_data.full_name,
    )

    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def issue_token(user: User) -> AuthPayload:
    """Build the {user, token} payload returned to clients"""
    token = create_access_token({"sub": str(user.id)})
    return AuthPayload(user=UserPublic.model_validate(user), token=token)


def login(session: Session, email: str, password: str) -> AuthPayload:
    user = authenticate_user(session, email, password)
    if not user:
        raise AuthError("Invalid credentials")
    return issue_token(user)


def get_user_by_id(session: Session, user_id: uuid.UUID) -> User | None:
    return session.get(User, user_id)


def get_user_by_email(session: Session, email: str) -> User | None:
    statement = select(User).where(User.email == email)
    return session.exec(statement).first()
