"""Bearer token helpers identifying the editing principal."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, Field, ValidationError

from invoicelocks.core.config import settings


bearer_scheme = HTTPBearer()


class TokenPayload(BaseModel):
    sub: str
    name: str
    exp: int


class Principal(BaseModel):
    """Opaque identity of the user requesting a lock."""

    id: int
    name: str = Field(max_length=50)


def create_access_token(user_id: int, name: str, expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT access token."""

    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expiry_minutes))
    to_encode = {"sub": str(user_id), "name": name, "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> Principal:
    """Resolve the principal carried by the bearer token."""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(credentials.credentials, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        token_data = TokenPayload(**payload)
        return Principal(id=int(token_data.sub), name=token_data.name)
    except (JWTError, ValidationError, ValueError) as exc:
        raise credentials_exception from exc
