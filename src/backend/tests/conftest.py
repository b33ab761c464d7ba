"""
Pytest fixtures for the verification backend tests.
"""

import os
import tempfile
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment variables before importing app
_DEFAULT_DB = Path(tempfile.gettempdir()) / "amaplayer_verification_test.db"
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DEFAULT_DB}")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("ENABLE_NOTIFICATION_SCHEDULER", "false")
os.environ.setdefault("VERIFICATION_RETRY_BACKOFF_SECONDS", "0.01")
os.environ.setdefault("FRONTEND_URL", "https://amaplayer.test")


class RecordingProfileService:
    """Profile service double that records badge calls and can be told to fail."""

    def __init__(self, failures: int = 0):
        self.calls: list[str] = []
        self.failures = failures

    async def set_verified_badge(self, owner_id: str) -> None:
        self.calls.append(owner_id)
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("profile service unavailable")


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
async def app() -> Any:
    """Create FastAPI application for testing."""
    from main import app as fastapi_app

    return fastapi_app


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Async test client without database overrides."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# =============================================================================
# Real database (SQLite file per test)
# =============================================================================


@pytest_asyncio.fixture
async def session_maker(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh schema in a file-backed SQLite database."""
    from db.base import Base
    import models  # noqa: F401

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'verification.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def profile_service() -> RecordingProfileService:
    return RecordingProfileService()


@pytest_asyncio.fixture
async def notifier(
    session_maker: async_sessionmaker[AsyncSession], profile_service: RecordingProfileService
) -> AsyncGenerator[Any, None]:
    from services.notification_service import VerificationNotifier, drain_background_deliveries

    yield VerificationNotifier(session_factory=session_maker, profile_service=profile_service)
    await drain_background_deliveries()


@pytest.fixture
def make_service(session_maker: async_sessionmaker[AsyncSession], notifier: Any) -> Callable[..., Any]:
    """Build a VerificationService on its own session (one per concurrent submitter)."""
    from services.verification_service import VerificationService

    def _make(session: AsyncSession) -> Any:
        return VerificationService(session, notifier=notifier)

    return _make


@pytest_asyncio.fixture
async def make_video(session_maker: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Create an owner account and a pending talent video."""
    from repositories.talent_video_repository import TalentVideoRepository
    from repositories.user_repository import UserRepository

    counter = {"n": 0}

    async def _make(
        goal: int = 1,
        owner_email: Optional[str] = None,
        deadline: Optional[datetime] = None,
    ) -> tuple[str, str]:
        counter["n"] += 1
        n = counter["n"]
        async with session_maker() as session:
            owner = await UserRepository(session).create(
                email=owner_email or f"athlete{n}@example.com",
                username=f"athlete{n}",
                display_name=f"Athlete {n}",
            )
            video = await TalentVideoRepository(session).create(
                owner_id=owner.id,
                title=f"Highlights {n}",
                video_url=f"https://cdn.amaplayer.test/videos/{n}.mp4",
                verification_goal=goal,
                sport="football",
                skill_category="dribbling",
                verification_deadline=deadline,
            )
            await session.commit()
            return video.id, owner.id

    return _make


def _submission(n: int, **overrides: Any) -> Any:
    from schemas.verification import VerificationSubmission

    data = {
        "verifier_name": f"Fan {n}",
        "verifier_email": f"fan{n}@example.com",
        "verifier_relationship": "coach",
        "verification_message": "Saw this live at the regional final.",
        "device_fingerprint": f"fp-{n:04d}",
        "ip_address": f"203.0.{n // 250}.{n % 250 + 1}",
        "user_agent": "pytest",
    }
    data.update(overrides)
    return VerificationSubmission(**data)


@pytest.fixture
def make_submission() -> Callable[..., Any]:
    """Build a valid submission whose device and network are unique to ``n``."""
    return _submission


@pytest_asyncio.fixture
async def api_client(
    app: Any,
    session_maker: async_sessionmaker[AsyncSession],
    profile_service: RecordingProfileService,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the per-test database and a recording profile service."""
    import db.session
    from db.session import get_db
    from services.notification_service import drain_background_deliveries

    async def override_get_db():
        async with session_maker() as session:
            yield session

    monkeypatch.setattr(db.session, "async_session_maker", session_maker)
    monkeypatch.setattr("services.notification_service.get_profile_service", lambda: profile_service)
    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await drain_background_deliveries()
    app.dependency_overrides.pop(get_db, None)


# =============================================================================
# Mocks
# =============================================================================


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create mock database session."""
    session = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()
    session.execute = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def admin_token(session_maker: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Create a user and return a bearer token for it."""
    from core.security import create_access_token
    from repositories.user_repository import UserRepository

    async def _make(is_admin: bool = True, username: str = "moderator") -> str:
        async with session_maker() as session:
            user = await UserRepository(session).create(
                email=f"{username}@example.com",
                username=username,
                is_admin=is_admin,
            )
            await session.commit()
        return create_access_token({"sub": user.id})

    return _make
