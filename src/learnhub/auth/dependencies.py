"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current caller extraction from JWT
- Role-based access control
- UserDirectory lookup from app state
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from learnhub.auth.permissions import UserRole, has_permission
from learnhub.auth.schemas import Principal
from learnhub.auth.security import decode_access_token
from learnhub.auth.service import UserDirectory
from learnhub.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> Principal:
    """Get current authenticated caller from JWT token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(token)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    user_id = payload["sub"]
    set_user_id(user_id)

    return Principal(id=user_id, email=payload["email"], role=payload["role"])


def require_permission(required_role: UserRole):
    """Create dependency requiring at least a permission level.

    Uses hierarchical comparison: ADMIN >= INSTRUCTOR >= STUDENT

    Example:
        @router.post("/grades")
        async def grade(
            user: Annotated[Principal, Depends(require_permission(UserRole.INSTRUCTOR))]
        ):
            ...
    """

    async def permission_checker(
        user: Annotated[Principal, Depends(get_current_user)],
    ) -> Principal:
        if not has_permission(user.role, required_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permission",
            )

        return user

    return permission_checker


def get_user_directory(request: Request) -> UserDirectory:
    """Get UserDirectory from app state."""
    directory = getattr(request.app.state, "user_directory", None)
    if directory is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User directory unavailable",
        )
    return directory


# ==============================================================================
# Type Aliases for Cleaner Code
# ==============================================================================

CurrentUser = Annotated[Principal, Depends(get_current_user)]
InstructorUser = Annotated[Principal, Depends(require_permission(UserRole.INSTRUCTOR))]
AdminUser = Annotated[Principal, Depends(require_permission(UserRole.ADMIN))]
UserDirectoryDep = Annotated[UserDirectory, Depends(get_user_directory)]
