"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite database per test
- Local attachment storage rooted in tmp_path
- HTTPX AsyncClient with get_db / storage overrides
"""
import os
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AI_PROVIDER"] = "mock"
os.environ["ENV"] = "test"

from process_intake.main import app  # noqa: E402
from process_intake.core.deps import get_attachment_storage, get_chat_backend, get_db  # noqa: E402
from process_intake.db.base import Base  # noqa: E402
import process_intake.db.models  # noqa: E402,F401
from process_intake.services.attachment_storage import LocalAttachmentStorage  # noqa: E402
from process_intake.services.intake_chat_service import SlotFillingChatBackend  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    """The app runs on asyncio (FastAPI/uvicorn); run anyio-marked tests there."""
    return "asyncio"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Creates a session on a private in-memory database.

    App code commits freely; the database disappears with the engine.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False)()

    yield session

    session.close()
    engine.dispose()


# =============================================================================
# Collaborator Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def storage(tmp_path) -> LocalAttachmentStorage:
    return LocalAttachmentStorage(str(tmp_path / "attachments"))


@pytest.fixture(scope="function")
def backend() -> SlotFillingChatBackend:
    return SlotFillingChatBackend()


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest_asyncio.fixture(scope="function")
async def client(
    db: Session,
    storage: LocalAttachmentStorage,
    backend: SlotFillingChatBackend,
) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient wired to the test database, tmp storage and the slot-filling backend."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_attachment_storage] = lambda: storage
    app.dependency_overrides[get_chat_backend] = lambda: backend

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Owner-Id": "owner-1"},
    ) as c:
        yield c

    app.dependency_overrides.clear()
