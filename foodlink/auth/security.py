"""Password hashing (bcrypt) and JWT access tokens (python-jose)."""
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from foodlink.config import settings

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def hash_password(plain: str) -> str:
    hashed = bcrypt.hashpw(plain.encode("utf-8")[:_BCRYPT_MAX_BYTES], bcrypt.gensalt())
    return hashed.decode("ascii")


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode("utf-8")[:_BCRYPT_MAX_BYTES], hashed.encode("ascii"))


def create_access_token(user_id: int, expires_delta: timedelta | None = None) -> str:
    """JWT with the user id (as a string) in 'sub'."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload: dict[str, Any] = {"sub": str(user_id), "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def user_id_from_token(token: str) -> int | None:
    """Decode and validate a JWT; the user id, or None if invalid/expired/malformed."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
