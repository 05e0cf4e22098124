"""
Authentication router — signup, login and refresh endpoints.

These are the only public (unauthenticated) endpoints in the API.

Endpoints:
  POST /auth/signup   — Register a new user
  POST /auth/login    — Exchange username/password for a token pair
  POST /auth/refresh  — Exchange an access token + refresh secret for a new pair

Passwords and tokens exist only in request/response bodies; they are never
logged.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cardapi.database import get_db
from cardapi.dependencies import get_auth_service
from cardapi.schemas.auth import (
    RefreshRequest,
    SignupResponse,
    TokenResponse,
    UserLoginRequest,
    UserSignupRequest,
)
from cardapi.services.auth_service import AuthService

router = APIRouter()


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def signup(
    request: UserSignupRequest,
    auth: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db),
):
    """
    Register a new user. Usernames are case-insensitive and trimmed.

    - **username**: 1-100 characters, unique
    - **password**: Minimum 8 characters
    """
    user = await auth.register(db, request.username, request.password)
    return SignupResponse(user_id=user.id, username=user.username)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Authenticate and get a token pair",
)
async def login(
    request: UserLoginRequest,
    auth: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db),
):
    """
    Authenticate with username and password.

    Returns a short-lived access token for the Authorization header and a
    long-lived refresh token for /auth/refresh. Keep the refresh token
    private; it is shown only once.
    """
    pair = await auth.login(db, request.username, request.password)
    return TokenResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Rotate the token pair",
)
async def refresh(
    request: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db),
):
    """
    Exchange the last access token (expired or not) and the current refresh
    token for a new pair.

    The presented refresh token is consumed. Presenting a refresh token that
    was already used, tampered with, or expired revokes the refresh chain
    and the user must log in again.
    """
    pair = await auth.refresh(db, request.access_token, request.refresh_token)
    return TokenResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)
