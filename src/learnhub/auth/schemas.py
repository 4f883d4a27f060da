"""Pydantic schemas for authentication."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from learnhub.auth.models import User


class LoginRequest(BaseModel):
    """Credentials for the token endpoint."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class TokenResponse(BaseModel):
    """Issued access token."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Lifetime in seconds")
    must_change_password: bool = False


class Principal(BaseModel):
    """Authenticated caller, built from the access token claims."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    role: str


class UserResponse(BaseModel):
    """User response (public profile)."""

    id: UUID
    email: str
    name: str | None = None
    role: str
    is_active: bool

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Create response from User model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name or None,
            role=user.role,
            is_active=user.is_active,
        )
