"""
Shared fixtures for API tests.

The app runs against the in-memory permission store; the database session
is an AsyncMock so commits can be asserted.
"""

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from taskgate.api.app import create_application
from taskgate.db.session import get_db
from taskgate.permissions import get_permission_store


@pytest.fixture
def mock_db():
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def app(project_tree, mock_db):
    app = create_application()

    async def override_store():
        return project_tree

    async def override_db():
        return mock_db

    app.dependency_overrides[get_permission_store] = override_store
    app.dependency_overrides[get_db] = override_db
    return app


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
