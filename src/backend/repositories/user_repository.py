"""
User repository for database operations.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.user import User


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _get_rowcount(self, result: Any) -> int:
        """Safely get rowcount from result."""
        return getattr(result, "rowcount", 0) or 0

    async def get_by_id(self, user_id: str) -> Optional[User]:
        """Get a user by ID."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_email(self, user_id: str) -> Optional[str]:
        """Get only the account email of a user."""
        result = await self.db.execute(select(User.email).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def email_exists(self, email: str) -> bool:
        """Check if email is already registered."""
        result = await self.db.execute(select(func.count(User.id)).where(User.email == email.lower()))
        count = result.scalar() or 0
        return count > 0

    async def create(
        self,
        email: str,
        username: str,
        display_name: Optional[str] = None,
        is_admin: bool = False,
    ) -> User:
        """Create a new user."""
        user = User(
            id=str(uuid4()),
            email=email.lower(),
            username=username,
            display_name=display_name,
            is_admin=is_admin,
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def set_verified_badge(self, user_id: str) -> bool:
        """
        Grant the verified badge.

        Idempotent: a user who already holds the badge keeps the original
        ``verified_at``. Returns False only when the user does not exist.
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.is_verified.is_(False))
            .values(is_verified=True, verified_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if self._get_rowcount(result) == 1:
            return True
        return await self.get_by_id(user_id) is not None
