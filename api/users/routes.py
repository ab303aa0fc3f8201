"""
Routes/endpoints for the Users API
"""
import uuid
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from core.deps import SessionDep
from core.models import ApiResponse
from api.auth.deps import CurrentAdmin, CurrentUser
from api.auth.models import UserPublic, UserUpdate
import api.users.services as services

router = APIRouter(prefix="/users", tags=["User Endpoints"])


@router.get("", response_model=ApiResponse)
def get_users(session: SessionDep, _admin: CurrentAdmin) -> JSONResponse:
  """
  Returns every user. Admin only.
  """
  users = [UserPublic.model_validate(u) for u in services.get_users(session)]
  return ApiResponse.ok(
    "Users retrieved successfully", {"count": len(users), "users": users}
  ).to_response()


@router.get("/{user_id}", response_model=ApiResponse)
def get_user(
  session: SessionDep, user_id: uuid.UUID, _user: CurrentUser
) -> JSONResponse:
  user = services.get_user(session, user_id)
  return ApiResponse.ok(
    "User retrieved successfully", {"user": UserPublic.model_validate(user)}
  ).to_response()


@router.put("/{user_id}", response_model=ApiResponse)
def update_user(
  session: SessionDep,
  user_id: uuid.UUID,
  user_in: UserUpdate,
  current_user: CurrentUser
) -> JSONResponse:
  """
  Update name/email. Users may update themselves; admins may update anyone.
  """
  user = services.update_user(session, user_id, user_in, actor=current_user)
  return ApiResponse.ok(
    "User updated successfully", {"user": UserPublic.model_validate(user)}
  ).to_response()


@router.delete("/{user_id}", response_model=ApiResponse)
def delete_user(
  session: SessionDep, user_id: uuid.UUID, current_user: CurrentUser
) -> JSONResponse:
  services.delete_user(session, user_id, actor=current_user)
  return ApiResponse.ok("User deleted successfully").to_response()
