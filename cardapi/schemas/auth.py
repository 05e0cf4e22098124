"""
Pydantic schemas for authentication endpoints (signup, login, refresh).

Field checks here are deliberately shallow: blank usernames or tokens are
let through so the service layer produces the same uniform 401 it would
for any other bad credential.
"""

import uuid

from pydantic import BaseModel, Field


class UserSignupRequest(BaseModel):
    """Request body for POST /auth/signup."""
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=8, max_length=255)


class UserLoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    username: str
    password: str


class RefreshRequest(BaseModel):
    """Request body for POST /auth/refresh."""
    access_token: str
    refresh_token: str


class TokenResponse(BaseModel):
    """Response body for login and refresh — the new token pair."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class SignupResponse(BaseModel):
    """Response body for successful signup."""
    user_id: uuid.UUID
    username: str
