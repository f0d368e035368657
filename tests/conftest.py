import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tests.mocks.fake_provider import FakeProvider

AUTH_COOKIE = "auth-token=authenticated"


@pytest.fixture
def fake_provider():
    """Provider that streams "Hello" then "!"; tests may reconfigure it."""
    return FakeProvider()


@pytest_asyncio.fixture
async def chat_app(fake_provider):
    """FastAPI app wired to the scripted fake provider."""
    from gemini_chat.main import app

    original = getattr(app.state, "provider", None)
    app.state.provider = fake_provider
    yield app
    app.state.provider = original


@pytest_asyncio.fixture
async def auth_client(chat_app):
    """HTTP client holding the access cookie."""
    transport = ASGITransport(app=chat_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        client.headers["Cookie"] = AUTH_COOKIE
        yield client


@pytest_asyncio.fixture
async def anon_client(chat_app):
    """HTTP client without the access cookie."""
    transport = ASGITransport(app=chat_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
