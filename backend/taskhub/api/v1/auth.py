"""Authentication endpoints and the current-user dependency."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr, Field

from taskhub.db.session import DBSession
from taskhub.exceptions import AuthenticationError
from taskhub.models.user import User
from taskhub.services.auth import AuthService, TokenPair

router = APIRouter()
logger = structlog.get_logger()
security = HTTPBearer(auto_error=False)


class RegisterRequest(BaseModel):
    """Registration request."""

    email: EmailStr
    # No "]" so the name can be used in @[username] mentions
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(..., min_length=8, max_length=72)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenResponse(BaseModel):
    """JWT token response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            token_type=pair.token_type,
            expires_in=pair.expires_in,
        )


class UserResponse(BaseModel):
    """User information response."""

    id: UUID
    email: str
    username: str
    created_at: datetime

    class Config:
        from_attributes = True


class AuthResponse(TokenResponse):
    user: UserResponse


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: DBSession,
) -> User:
    """Get the current authenticated user from the bearer access token."""
    if not credentials:
        raise AuthenticationError("Not authenticated.", code="NOT_AUTHENTICATED")
    return await AuthService(db).get_user_for_access_token(credentials.credentials)


# Type alias for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, db: DBSession) -> AuthResponse:
    """Create an account and sign it in."""
    service = AuthService(db)
    user = await service.register(request.email, request.username, request.password)
    tokens = TokenResponse.from_pair(service.issue_tokens(user))
    return AuthResponse(**tokens.model_dump(), user=UserResponse.model_validate(user))


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, db: DBSession) -> AuthResponse:
    service = AuthService(db)
    user = await service.authenticate(request.email, request.password)
    tokens = TokenResponse.from_pair(service.issue_tokens(user))
    return AuthResponse(**tokens.model_dump(), user=UserResponse.model_validate(user))


@router.post("/refresh", response_model=TokenResponse)
async def refresh_tokens(request: RefreshRequest, db: DBSession) -> TokenResponse:
    """Exchange a refresh token for a new token pair."""
    return TokenResponse.from_pair(await AuthService(db).refresh(request.refresh_token))


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: CurrentUser) -> User:
    """Get the current user's profile."""
    return current_user
