"""
Shared dependencies for API endpoints.

Includes:
- User JWT authentication (optional for verifiers, required for admins)
- Rate limiting for anonymous verification attempts
"""

import math
import time
from typing import Annotated, Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import RateLimited
from core.security import decode_token
from db.session import get_db
from models.user import User
from repositories.rate_limit_repository import RateLimitRepository
from schemas.user import UserInDB
from services.risk_signals import get_client_ip

logger = structlog.get_logger(__name__)

# Security schemes
security = HTTPBearer()
security_optional = HTTPBearer(auto_error=False)


# =============================================================================
# Helper Functions
# =============================================================================


def _user_model_to_schema(user: User) -> UserInDB:
    """Convert a User SQLAlchemy model to a UserInDB Pydantic schema."""
    return UserInDB(
        id=str(user.id),
        email=user.email,
        username=user.username,
        display_name=user.display_name,
        is_active=user.is_active,
        is_verified=user.is_verified,
        is_admin=user.is_admin,
        created_at=user.created_at,
    )


async def _load_user(token: str, db: AsyncSession) -> Optional[UserInDB]:
    payload = decode_token(token, expected_type="access")
    if payload is None or payload.get("sub") is None:
        return None

    result = await db.execute(select(User).where(User.id == payload["sub"]))
    user = result.scalar_one_or_none()
    if not user:
        return None
    return _user_model_to_schema(user)


# =============================================================================
# User Authentication (JWT-based)
# =============================================================================


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: AsyncSession = Depends(get_db),
) -> UserInDB:
    """
    Extract and validate the current user from the JWT token.

    Raises:
        HTTPException: If token is invalid or user not found.
    """
    user = await _load_user(credentials.credentials, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user",
        )
    return user


async def get_current_user_optional(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_optional)],
    db: AsyncSession = Depends(get_db),
) -> UserInDB | None:
    """
    Optionally extract the current user from the JWT token.

    Verifiers are usually anonymous. When the athlete is signed in, the token
    lets the verification service recognize (and refuse) a self-vote.
    """
    if credentials is None:
        return None
    return await _load_user(credentials.credentials, db)


async def get_current_admin_user(
    current_user: Annotated[UserInDB, Depends(get_current_user)],
) -> UserInDB:
    """
    Ensure the current user is an admin.

    Raises:
        HTTPException: If user is not an admin.
    """
    if not current_user.is_admin:
        logger.warning(
            "non_admin_access_attempt",
            user_id=current_user.id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


# =============================================================================
# Rate Limiting
# =============================================================================


class RateLimiter:
    """
    Fixed-window rate limiter backed by the ``rate_limit_windows`` table.

    Every API process counts against the same rows. Usable as a dependency
    (keyed by client IP) or directly through ``check()`` with a caller-chosen
    identifier. Each attempt is committed on its own, so a request that is
    later rejected or rolled back still counts.
    """

    def __init__(
        self,
        requests_per_window: int = 60,
        window_seconds: int = 60,
        key_prefix: str = "api",
    ):
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix

    async def __call__(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db),
    ) -> None:
        await self.check(db, f"ip:{get_client_ip(request)}")

    async def check(self, db: AsyncSession, identifier: str) -> int:
        """
        Record one attempt and return how many remain in the window.

        Raises:
            RateLimited: the identifier used up its window.
        """
        now = time.time()
        hits, window_start = await RateLimitRepository(db).hit(
            identifier=identifier,
            action_key=self.key_prefix,
            window_seconds=self.window_seconds,
            now=now,
        )
        await db.commit()

        if hits > self.requests_per_window:
            retry_after = max(1, math.ceil(window_start + self.window_seconds - now))
            logger.warning(
                "rate_limit_exceeded",
                action=self.key_prefix,
                identifier=identifier[:20],
                limit=self.requests_per_window,
            )
            raise RateLimited(retry_after=retry_after)

        return self.requests_per_window - hits


def verification_rate_key(
    device_fingerprint: Optional[str],
    ip_address: Optional[str],
    verifier_email: Optional[str],
) -> str:
    """Device first, then network, then email."""
    if device_fingerprint and device_fingerprint.strip():
        return f"device:{device_fingerprint.strip()}"
    if ip_address and ip_address.strip() and ip_address.strip().lower() != "unknown":
        return f"ip:{ip_address.strip()}"
    if verifier_email and verifier_email.strip():
        return f"email:{verifier_email.strip().lower()}"
    return "anonymous"


# Pre-configured rate limiters
rate_limit_default = RateLimiter(requests_per_window=settings.RATE_LIMIT_PER_MINUTE)
rate_limit_verification = RateLimiter(
    requests_per_window=settings.VERIFICATION_RATE_LIMIT_PER_MINUTE,
    key_prefix="verify_video",
)
