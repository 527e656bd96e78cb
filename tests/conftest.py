"""
Pytest configuration and fixtures for the bookstore API tests.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from bookstore.core.config import Settings
from bookstore.main import create_app
from bookstore.security.utils import create_access_token, hash_password


TEST_SECRET = "test-secret"
TEST_PASSWORD = "secret123"


# =============================================================================
# Settings / application
# =============================================================================

def get_test_settings(**overrides) -> Settings:
    """Return settings pointing at a private in-memory database."""
    values = dict(
        POSTGRES_DSN="sqlite://",
        JWT_SECRET=TEST_SECRET,
        ACCESS_TOKEN_EXPIRES_SECONDS=86400,
        CREATE_SCHEMA=False,
        LOG_LEVEL="WARNING",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return get_test_settings()


@pytest.fixture
def app(settings):
    application = create_app(settings)
    application.state.gateway.create_schema()
    yield application
    application.state.gateway.dispose()


@pytest.fixture
def gateway(app):
    return app.state.gateway


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# =============================================================================
# Users and credentials
# =============================================================================

@pytest.fixture(scope="session")
def password_hash() -> str:
    # bcrypt is slow; hash once per run
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def user(gateway, password_hash):
    return gateway.create_user("reader@example.com", password_hash, username="reader").value


@pytest.fixture
def auth_headers(settings, user) -> dict:
    token, _ = create_access_token(settings, user.id, user.email)
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Catalog factories
# =============================================================================

@pytest.fixture
def create_genre(client, auth_headers):
    async def _create(name: str = "Programming") -> dict:
        response = await client.post("/genre", json={"name": name}, headers=auth_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _create


@pytest.fixture
def book_payload():
    def _payload(genre_id: str, **overrides) -> dict:
        payload = {
            "title": "Clean Code",
            "writer": "Robert C. Martin",
            "publisher": "Prentice Hall",
            "description": "A handbook of agile software craftsmanship",
            "publication_year": 2008,
            "price": 150000,
            "stock_quantity": 10,
            "genre_id": genre_id,
        }
        payload.update(overrides)
        return payload
    return _payload


@pytest.fixture
def create_book(client, auth_headers, book_payload):
    async def _create(genre_id: str, **overrides) -> dict:
        response = await client.post("/books", json=book_payload(genre_id, **overrides), headers=auth_headers)
        assert response.status_code == 201, response.text
        return response.json()["data"]
    return _create
