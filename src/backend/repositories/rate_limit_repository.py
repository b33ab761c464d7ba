"""
Rate limit repository.

``hit`` is a single INSERT ... ON CONFLICT DO UPDATE ... RETURNING, so
concurrent attempts from any number of processes count exactly once each.
"""

from typing import Any
from uuid import uuid4

from sqlalchemy import case, delete
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from models.rate_limit_window import RateLimitWindow

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class RateLimitRepository:
    """Repository for shared rate limit windows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _get_rowcount(self, result: Any) -> int:
        """Safely get rowcount from result."""
        return getattr(result, "rowcount", 0) or 0

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise NotImplementedError(f"Rate limiting does not support the {dialect} dialect") from None

    async def hit(
        self,
        identifier: str,
        action_key: str,
        window_seconds: int,
        now: float,
    ) -> tuple[int, float]:
        """
        Count one attempt and return ``(hits, window_start)`` for the current window.

        A window older than ``window_seconds`` restarts at ``now`` with one hit.
        """
        insert = self._insert()
        stmt = insert(RateLimitWindow).values(
            id=str(uuid4()),
            identifier=identifier,
            action_key=action_key,
            hits=1,
            window_start=now,
        )
        expired = RateLimitWindow.window_start + window_seconds <= stmt.excluded.window_start
        stmt = stmt.on_conflict_do_update(
            index_elements=["identifier", "action_key"],
            set_={
                "hits": case((expired, 1), else_=RateLimitWindow.hits + 1),
                "window_start": case((expired, stmt.excluded.window_start), else_=RateLimitWindow.window_start),
            },
        ).returning(RateLimitWindow.hits, RateLimitWindow.window_start)

        row = (await self.db.execute(stmt)).one()
        return row[0], row[1]

    async def purge_expired(self, before: float) -> int:
        """Delete windows that started before ``before``. Returns rows removed."""
        result = await self.db.execute(
            delete(RateLimitWindow)
            .where(RateLimitWindow.window_start < before)
            .execution_options(synchronize_session=False)
        )
        return self._get_rowcount(result)
