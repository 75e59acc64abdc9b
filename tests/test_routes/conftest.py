import pytest
from httpx import ASGITransport, AsyncClient

from recordshop.dependencies import get_catalog_gateway, get_db
from recordshop.main import app


@pytest.fixture
async def client(db_session, mock_gateway):
    """HTTP client against the app with the test session and the mock Discogs gateway"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog_gateway] = lambda: mock_gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
