"""Authentication routes.

Endpoints for:
- POST /v1/auth/login - Exchange credentials for an access token
- GET /v1/auth/me - Current caller profile
"""

from fastapi import APIRouter, HTTPException, status

from learnhub.auth.dependencies import CurrentUser, UserDirectoryDep
from learnhub.auth.schemas import LoginRequest, TokenResponse, UserResponse
from learnhub.auth.security import create_access_token
from learnhub.auth.service import InvalidCredentialsError
from learnhub.config import get_settings
from learnhub.core.logging import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse, summary="Obtain access token")
async def login(data: LoginRequest, directory: UserDirectoryDep) -> TokenResponse:
    """Authenticate with email and password."""
    try:
        user = await directory.authenticate(data.email, data.password)
    except InvalidCredentialsError as e:
        logger.info("login_failed", reason=e.code)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    settings = get_settings()
    token = create_access_token(
        {"sub": str(user.id), "email": user.email, "role": user.role}
    )
    logger.info("login_succeeded", user_id=str(user.id))
    return TokenResponse(
        access_token=token,
        expires_in=settings.auth_access_token_expire_minutes * 60,
        must_change_password=user.must_change_password,
    )


@router.get("/me", response_model=UserResponse, summary="Current user profile")
async def me(user: CurrentUser, directory: UserDirectoryDep) -> UserResponse:
    """Profile of the authenticated caller."""
    account = await directory.get_user(user.id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse.from_user(account)
