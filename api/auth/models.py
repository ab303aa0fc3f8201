"""
Authentication models for users and tokens
"""
from datetime import datetime, timezone
from enum import Enum
import uuid
from sqlmodel import Field, SQLModel
from pydantic import EmailStr, ConfigDict


class UserRole(str, Enum):
    """Roles recognised by the authorization checks"""
    USER = "user"
    ADMIN = "admin"


class User(SQLModel, table=True):
    """User model with authentication support"""

    __tablename__ = "users"

    # Primary identifiers
    id: uuid.UUID | None = Field(default_factory=uuid.uuid4, primary_key=True)

    # Authentication
    email: str = Field(unique=True, index=True, max_length=255)
    username: str = Field(unique=True, index=True, max_length=50)
    hashed_password: str = Field(max_length=255)

    # Profile
    full_name: str | None = Field(default=None, max_length=255)
    role: UserRole = Field(default=UserRole.USER)

    # Status flags
    is_active: bool = Field(default=True)

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_login: datetime | None = Field(default=None)

    model_config = ConfigDict(from_attributes=True)


# Request/Response Models

class UserRegister(SQLModel):
    """User registration request"""
    email: EmailStr
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(max_length=100)  # Validation done in service layer
    full_name: str | None = None


class UserLogin(SQLModel):
    """User login request"""
    email: EmailStr
    password: str


class UserPublic(SQLModel):
    """Public user information"""
    id: uuid.UUID
    email: str
    username: str
    full_name: str | None
    role: UserRole
    is_active: bool
    created_at: datetime
    last_login: datetime | None


class UserUpdate(SQLModel):
    """User profile update"""
    full_name: str | None = None
    email: EmailStr | None = None

    model_config = ConfigDict(extra="forbid")


class AuthPayload(SQLModel):
    """Body of the data field returned by register and login"""
    user: UserPublic
    token: str
