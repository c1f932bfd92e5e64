from pydantic import BaseModel, EmailStr
from datetime import datetime
from typing import Optional, Literal


OrgRoleType = Literal["owner", "admin", "member"]


class UserBase(BaseModel):
    """Base user schema."""

    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserResponse(UserBase):
    """Schema for user response - matches the frontend User type."""

    id: str  # Frontend expects string ID
    is_active: bool
    created_at: Optional[datetime] = None
    organization_id: Optional[str] = None
    org_role: Optional[OrgRoleType] = None

    @classmethod
    def from_db_user(cls, user) -> "UserResponse":
        """Create UserResponse from database User model."""
        return cls(
            id=str(user.id),
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_active=user.is_active,
            created_at=user.created_at,
            organization_id=str(user.organization_id) if user.organization_id is not None else None,
            org_role=user.org_role,
        )


class AuthMeResponse(BaseModel):
    """Response wrapper for /auth/me."""

    user: UserResponse
    scope: Literal["personal", "organization"]


class Token(BaseModel):
    """JWT token response - includes 'token' for frontend compatibility."""

    access_token: str
    token: str  # Alias for access_token
    token_type: str = "bearer"


class TokenData(BaseModel):
    """Data encoded in JWT token."""

    user_id: Optional[int] = None
    email: Optional[str] = None


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str
