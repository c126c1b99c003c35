"""User registration, password hashing and JWT issuance."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import bcrypt
import structlog
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.config import Settings, get_settings
from taskhub.db.transaction import atomic
from taskhub.exceptions import AuthenticationError, ConflictError, InvalidInputError
from taskhub.models.user import User

logger = structlog.get_logger()

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

PASSWORD_MIN_LENGTH = 8
# bcrypt only looks at the first 72 bytes
PASSWORD_MAX_BYTES = 72


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"


def hash_password(password: str, rounds: int = 12) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _token_secret(settings: Settings, token_type: str) -> str:
    if token_type == REFRESH_TOKEN:
        return settings.jwt_refresh_secret_key.get_secret_value()
    return settings.jwt_secret_key.get_secret_value()


def create_token(user_id: UUID, token_type: str, settings: Settings) -> str:
    """Create a signed JWT of the given type for a user."""
    now = datetime.now(timezone.utc)
    if token_type == REFRESH_TOKEN:
        expire = now + timedelta(days=settings.jwt_refresh_token_expire_days)
    else:
        expire = now + timedelta(minutes=settings.jwt_access_token_expire_minutes)

    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "iat": now,
        "type": token_type,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(to_encode, _token_secret(settings, token_type), algorithm=settings.jwt_algorithm)


def decode_token(token: str, token_type: str, settings: Settings) -> UUID:
    """Verify a JWT of the expected type and return its subject user ID.

    Raises:
        AuthenticationError: for expired, malformed or wrongly-typed tokens.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _token_secret(settings, token_type),
            algorithms=[settings.jwt_algorithm],
        )
    except ExpiredSignatureError:
        raise AuthenticationError("Token expired.", code="TOKEN_EXPIRED") from None
    except JWTError:
        raise AuthenticationError("Invalid token.", code="INVALID_TOKEN") from None

    if payload.get("type") != token_type:
        raise AuthenticationError("Invalid token.", code="INVALID_TOKEN")
    try:
        return UUID(payload["sub"])
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid token.", code="INVALID_TOKEN") from None


class AuthService:
    """Service for registration, login and token refresh."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    async def register(self, email: str, username: str, password: str) -> User:
        email = email.strip().lower()
        username = username.strip()
        self._check_password(password)

        existing = await self.db.execute(
            select(User.email, User.username).where(
                or_(func.lower(User.email) == email, func.lower(User.username) == username.lower())
            )
        )
        taken = existing.all()
        if any(row.email.lower() == email for row in taken):
            raise ConflictError("Email is already registered.", code="EMAIL_TAKEN")
        if taken:
            raise ConflictError("Username is already taken.", code="USERNAME_TAKEN")

        user = User(
            email=email,
            username=username,
            password_hash=hash_password(password, self.settings.bcrypt_rounds),
        )
        async with atomic(self.db, "Email or username is already registered."):
            self.db.add(user)

        logger.info("user_registered", user_id=str(user.id))
        return user

    async def authenticate(self, email: str, password: str) -> User:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        user = result.scalar_one_or_none()

        if user is None or not verify_password(password, user.password_hash):
            logger.info("login_failed")
            raise AuthenticationError("Invalid email or password.", code="INVALID_CREDENTIALS")

        logger.info("login_succeeded", user_id=str(user.id))
        return user

    def issue_tokens(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=create_token(user.id, ACCESS_TOKEN, self.settings),
            refresh_token=create_token(user.id, REFRESH_TOKEN, self.settings),
            expires_in=self.settings.jwt_access_token_expire_minutes * 60,
        )

    async def refresh(self, refresh_token: str) -> TokenPair:
        user = await self._get_user(decode_token(refresh_token, REFRESH_TOKEN, self.settings))
        return self.issue_tokens(user)

    async def get_user_for_access_token(self, access_token: str) -> User:
        return await self._get_user(decode_token(access_token, ACCESS_TOKEN, self.settings))

    async def _get_user(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise AuthenticationError("User not found.", code="INVALID_TOKEN")
        return user

    @staticmethod
    def _check_password(password: str) -> None:
        if len(password) < PASSWORD_MIN_LENGTH:
            raise InvalidInputError(
                f"Password must be at least {PASSWORD_MIN_LENGTH} characters."
            )
        if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise InvalidInputError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes.")
