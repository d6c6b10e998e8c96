"""Pydantic schemas for auth: register, login, profile, role, location, token."""
from pydantic import BaseModel, EmailStr, Field

from foodlink.models.user import UserRole


class UserCreate(BaseModel):
    """Request body for POST /auth/register. Role may be left for onboarding."""
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    role: UserRole = UserRole.UNASSIGNED


class UserResponse(BaseModel):
    """User in API responses (no password)."""
    id: int
    email: str
    name: str | None = None
    phone: str | None = None
    role: UserRole

    class Config:
        from_attributes = True


class UserUpdate(BaseModel):
    """Request body for PATCH /auth/me. Role is not editable here."""
    name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)


class RoleAssign(BaseModel):
    """Request body for POST /auth/me/role (one time, while unassigned)."""
    role: UserRole


class LocationUpdate(BaseModel):
    """Current device coordinates, used as the origin for distance filters."""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Token(BaseModel):
    """Response for login: access_token and type."""
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: EmailStr
    password: str
