"""
Services for the Users API
"""
from datetime import datetime, timezone
import uuid

from sqlmodel import Session, select

from api.auth.models import User, UserRole, UserUpdate
from core.errors import ConflictError, ForbiddenError, NotFoundError
from core.logger import logger


def get_users(session: Session) -> list[User]:
  return list(session.exec(select(User).order_by(User.created_at)).all())


def get_user(session: Session, user_id: uuid.UUID) -> User:
  """
  Returns a single user by id

  Raises:
    NotFoundError: if no such user exists
  """
  user = session.get(User, user_id)
  if user is None:
    raise NotFoundError("User not found")
  return user


def _check_can_modify(actor: User, target_id: uuid.UUID) -> None:
  if actor.role != UserRole.ADMIN and actor.id != target_id:
    raise ForbiddenError("Insufficient permissions")


def update_user(
  session: Session, user_id: uuid.UUID, user_in: UserUpdate, actor: User
) -> User:
  _check_can_modify(actor, user_id)
  user = get_user(session, user_id)

  update = user_in.model_dump(exclude_unset=True)
  if "email" in update and update["email"] != user.email:
    clash = session.exec(select(User).where(User.email == update["email"])).first()
    if clash:
      raise ConflictError("Email already registered")

  for key, value in update.items():
    setattr(user, key, value)
  user.updated_at = datetime.now(timezone.utc)

  session.add(user)
  session.commit()
  session.refresh(user)
  return user


def delete_user(session: Session, user_id: uuid.UUID, actor: User) -> None:
  _check_can_modify(actor, user_id)
  user = get_user(session, user_id)
  session.delete(user)
  session.commit()
  logger.info("Deleted user %s", user_id)
