import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from typing import AsyncGenerator

from content_guard.engines.moderation.audit import AuditStore
from content_guard.engines.moderation.policy import DecisionPolicy
from content_guard.engines.moderation.service import ModerationService
from tests.factories import CountingFactory, FakeDownloader, FakeSession, make_engine


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def session_factory(fake_session):
    return CountingFactory(session=fake_session)


@pytest.fixture
def downloader():
    return FakeDownloader()


@pytest.fixture
def engine(tmp_path, session_factory, downloader):
    return make_engine(tmp_path / "model-cache", session_factory=session_factory, downloader=downloader)


@pytest.fixture
def audit_store():
    return AuditStore()


@pytest.fixture
def service(engine, audit_store):
    return ModerationService(
        engine=engine,
        audit_store=audit_store,
        policy=DecisionPolicy(high=0.7, mid=0.4),
        max_size_bytes=50 * 1024 * 1024,
        max_dimension=4096,
    )


@pytest_asyncio.fixture
async def client(service) -> AsyncGenerator[AsyncClient, None]:
    from content_guard.main import app
    from content_guard.api.dependencies import get_moderation_service

    app.dependency_overrides[get_moderation_service] = lambda: service
    # Trigger lifespan events (startup/shutdown)
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()
