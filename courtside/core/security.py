from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import jwt, JWTError
from pydantic import ValidationError

from courtside.core.config import settings
from courtside.schemas.user import TokenPayload

ALGORITHM = "HS256"


def create_access_token(user_id: UUID, expires_delta: Optional[timedelta] = None) -> str:
    """Bearer token for a player or staff member; the role is read from the DB on each request."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return jwt.encode({"exp": expire, "sub": str(user_id)}, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[TokenPayload]:
    """Validated claims, or None for a bad signature, an expired token or a malformed subject."""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        return TokenPayload(**claims)
    except (JWTError, ValidationError):
        return None
