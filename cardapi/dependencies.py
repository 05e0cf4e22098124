"""
FastAPI dependencies for service wiring and authentication.

Dependency chain for protected endpoints:

  get_token_codec (settings -> TokenCodec, cached)
      └── get_current_user (Bearer token -> active User)

  get_auth_service (TokenCodec + Argon2 hasher -> AuthService, cached)
  get_approval_policy (settings -> CeilingApprovalPolicy, cached)

The cached providers return one instance per process. AuthService must be
a singleton because it owns the per-user refresh rotation locks. Tests
swap any of these out via app.dependency_overrides.
"""

import uuid
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardapi.config import settings
from cardapi.database import get_db
from cardapi.exceptions import InvalidTokenError
from cardapi.models.user import User
from cardapi.security import Argon2PasswordHasher, TokenCodec
from cardapi.services.auth_service import AuthService
from cardapi.services.transaction_service import CeilingApprovalPolicy


# OAuth2PasswordBearer reads "Authorization: Bearer <token>". tokenUrl is
# only used by the Swagger UI "Authorize" button.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


@lru_cache
def get_token_codec() -> TokenCodec:
    return TokenCodec(
        secret_key=settings.SECRET_KEY,
        issuer=settings.JWT_ISSUER,
        audience=settings.JWT_AUDIENCE,
        access_token_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        algorithm=settings.ALGORITHM,
    )


@lru_cache
def get_auth_service() -> AuthService:
    return AuthService(
        codec=get_token_codec(),
        hasher=Argon2PasswordHasher(),
        refresh_token_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        lock_timeout=settings.REFRESH_LOCK_TIMEOUT_SECONDS,
    )


@lru_cache
def get_approval_policy() -> CeilingApprovalPolicy:
    return CeilingApprovalPolicy(ceiling=settings.APPROVAL_CEILING)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    codec: TokenCodec = Depends(get_token_codec),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Validate the access token (expiry enforced) and return the active User.

    Raises:
        HTTPException 401: If the token is invalid or expired, or the user
            doesn't exist or is disabled.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        claims = codec.verify_active(token)
        user_id = uuid.UUID(claims.subject)
    except (InvalidTokenError, TypeError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise credentials_exception

    return user
