"""Auth routes: register, login, profile (GET/PATCH /me), one-time role, current location."""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from foodlink.auth.security import create_access_token, hash_password, verify_password
from foodlink.database import get_db
from foodlink.deps import get_current_user, get_redis
from foodlink.models.user import User, UserRole
from foodlink.schemas.user import LocationUpdate, LoginRequest, RoleAssign, Token, UserCreate, UserResponse, UserUpdate
from foodlink.services.expiry import utcnow
from foodlink.services.geo import Coordinates
from foodlink.services.location_store import set_viewer_location
from foodlink.services.role_gate import can_assign_role

router = APIRouter(prefix="/auth", tags=["auth"])


def _clean(value: str | None) -> str | None:
    return (value or "").strip() or None


@router.post("/register", response_model=UserResponse)
async def register(body: UserCreate, db: AsyncSession = Depends(get_db)):
    """Create a new user. Role may be chosen now or later (once) via POST /auth/me/role."""
    result = await db.execute(select(User).where(User.email == body.email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
    user = User(
        email=body.email,
        hashed_password=hash_password(body.password),
        name=_clean(body.name),
        phone=_clean(body.phone),
        role=body.role,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


@router.post("/login", response_model=Token)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login with email + password; returns JWT access_token."""
    result = await db.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()
    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    return Token(access_token=create_access_token(user.id))


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    """Return the currently authenticated user (requires Bearer token)."""
    return current_user


@router.patch("/me", response_model=UserResponse)
async def update_me(
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update current user profile (name, phone)."""
    if body.name is not None:
        current_user.name = _clean(body.name)
    if body.phone is not None:
        current_user.phone = _clean(body.phone)
    current_user.updated_at = utcnow()
    await db.flush()
    await db.refresh(current_user)
    return current_user


@router.post("/me/role", response_model=UserResponse)
async def assign_role(
    body: RoleAssign,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Finish onboarding by picking donor or receiver. Immutable afterwards."""
    if body.role == UserRole.UNASSIGNED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Choose donor or receiver")
    if not can_assign_role(current_user.role):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Role is already set")
    current_user.role = body.role
    current_user.updated_at = utcnow()
    await db.flush()
    await db.refresh(current_user)
    return current_user


@router.put("/me/location", status_code=status.HTTP_204_NO_CONTENT)
async def report_location(
    body: LocationUpdate,
    redis: Any = Depends(get_redis),
    current_user: User = Depends(get_current_user),
):
    """Store the device's current coordinates (short TTL) as the origin for distance filters."""
    await set_viewer_location(redis, current_user.id, Coordinates(body.lat, body.lng))
    return None
