"""
Authentication endpoints for registration, login and the current profile
"""
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from core.deps import SessionDep
from core.models import ApiResponse
from api.auth.models import UserLogin, UserPublic, UserRegister
from api.auth.deps import CurrentUser
import api.auth.services as auth_services

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED
)
def register(
    session: SessionDep,
    user_data: UserRegister
) -> JSONResponse:
    """
    Register a new user account

    Returns the created user and an access token.

    Raises:
        409: Email or username already exists
        400: Invalid password strength
    """
    user = auth_services.register_user(session, user_data)
    payload = auth_services.issue_token(user)
    return ApiResponse.ok("User registered successfully", payload).to_response(
        status.HTTP_201_CREATED
    )


@router.post("/login", response_model=ApiResponse)
def login(
    session: SessionDep,
    credentials: UserLogin
) -> JSONResponse:
    """
    Login with email and password

    Raises:
        401: Invalid credentials
    """
    payload = auth_services.login(session, credentials.email, credentials.password)
    return ApiResponse.ok("Login successful", payload).to_response()


@router.get("/me", response_model=ApiResponse)
def get_current_user_info(
    current_user: CurrentUser
) -> JSONResponse:
    """
    Get current user profile
    """
    return ApiResponse.ok(
        "Profile retrieved", {"user": UserPublic.model_validate(current_user)}
    ).to_response()
