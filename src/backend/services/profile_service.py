"""
Video owner profile service.

Grants the verified-athlete badge once a talent video is verified. Profiles
live in the AmaPlayer user service when ``PROFILE_SERVICE_URL`` is set;
otherwise the badge is written straight to the local ``users`` table.
Every implementation must be idempotent: the notifier may call it more than
once for the same owner.
"""

from typing import Callable, Optional, Protocol

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from repositories.user_repository import UserRepository

logger = structlog.get_logger(__name__)


class ProfileServiceError(Exception):
    """Badge update could not be applied; the caller may retry later."""


class VideoOwnerProfileService(Protocol):
    async def set_verified_badge(self, owner_id: str) -> None: ...


class DatabaseProfileService:
    """Sets ``users.is_verified`` in its own short transaction."""

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        if session_factory is None:
            from db.session import async_session_maker

            session_factory = async_session_maker
        self.session_factory = session_factory

    async def set_verified_badge(self, owner_id: str) -> None:
        async with self.session_factory() as db:
            found = await UserRepository(db).set_verified_badge(owner_id)
            if not found:
                await db.rollback()
                raise ProfileServiceError(f"Owner profile {owner_id} not found")
            await db.commit()
        logger.info("verified_badge_set", owner_id=owner_id, backend="database")


class HttpProfileService:
    """Calls the external profile service over HTTP."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout or settings.PROFILE_SERVICE_TIMEOUT_SECONDS
        self._transport = transport

    async def set_verified_badge(self, owner_id: str) -> None:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/users/{owner_id}/verified-badge",
                    json={"isVerified": True},
                    headers=headers,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ProfileServiceError(f"Profile service request failed: {e}") from e
        logger.info("verified_badge_set", owner_id=owner_id, backend="http")


def get_profile_service() -> VideoOwnerProfileService:
    """Profile service selected by configuration."""
    if settings.PROFILE_SERVICE_URL:
        return HttpProfileService(settings.PROFILE_SERVICE_URL, token=settings.PROFILE_SERVICE_TOKEN)
    return DatabaseProfileService()
