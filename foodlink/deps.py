"""Shared dependencies: db session, redis, current user, viewer."""
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from foodlink.auth.security import user_id_from_token
from foodlink.database import get_db
from foodlink.models.user import User
from foodlink.services.role_gate import Viewer

security = HTTPBearer(auto_error=False)


def get_redis(request: Request) -> Any:
    """Redis client opened in the lifespan."""
    return request.app.state.redis


async def _user_from_credentials(
    credentials: HTTPAuthorizationCredentials | None,
    db: AsyncSession,
) -> User | None:
    if not credentials:
        return None
    user_id = user_id_from_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Validate JWT from Authorization: Bearer <token> and return the User. Raises 401 if missing/invalid."""
    user = await _user_from_credentials(credentials, db)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


async def get_viewer(current_user: Annotated[User, Depends(get_current_user)]) -> Viewer:
    return Viewer.from_user(current_user)


async def get_optional_viewer(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Viewer:
    """Anonymous viewer when no token is sent; a bad token is still a 401."""
    user = await _user_from_credentials(credentials, db)
    return Viewer.from_user(user) if user else Viewer.anonymous()
