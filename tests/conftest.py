from types import SimpleNamespace
from typing import TYPE_CHECKING, AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

if TYPE_CHECKING:
    from app.core.cache import CacheService

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.main import app


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Yield an ``httpx.AsyncClient`` wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Return an ``AsyncMock`` that behaves like ``redis.asyncio.Redis``."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.setex = AsyncMock()
    redis.delete = AsyncMock()
    redis.ping = AsyncMock()
    return redis


@pytest.fixture
def mock_cache(mock_redis) -> "CacheService":
    """Return a ``CacheService`` backed by the mock Redis client."""
    from app.core.cache import CacheService

    return CacheService(redis_client=mock_redis)


@pytest.fixture
def mock_session() -> AsyncMock:
    """An ``AsyncSession`` stand-in usable as an async context manager."""
    session = AsyncMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    session.add = MagicMock()
    return session


@pytest.fixture
def session_factory(mock_session) -> MagicMock:
    return MagicMock(return_value=mock_session)


@pytest.fixture
def mock_lead_repo() -> AsyncMock:
    """``LeadRepository`` stand-in; every lead exists unless told otherwise."""
    repo = AsyncMock()
    repo.exists = AsyncMock(return_value=True)
    repo.update_fields = AsyncMock()
    repo.commit = AsyncMock()
    repo.rollback = AsyncMock()
    return repo


@pytest.fixture
def mock_execution_logger() -> AsyncMock:
    logger = AsyncMock()
    logger.log_rule_execution = AsyncMock()
    logger.log_activity = AsyncMock()
    return logger


def make_lead(**overrides):
    """Build an object shaped like an ORM ``Lead`` with its relations loaded."""
    values = {
        "lead_id": uuid4(),
        "company_name": "Acme Corp",
        "domain": "acme.example",
        "industry": "Technology",
        "status": "RAW",
        "score": 50,
        "assigned_to_id": None,
        "assigned_team_id": None,
        "campaign_id": None,
        "created_at": None,
        "updated_at": None,
        "scoring_details": None,
        "enrichment": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def make_rule(**overrides):
    """Build an object shaped like an ORM ``BusinessRule``."""
    values = {
        "rule_id": uuid4(),
        "name": "High score qualifies",
        "description": None,
        "type": "status_change",
        "conditions": [
            {"field": "score", "operator": "greater_than", "value": 70}
        ],
        "actions": [
            {"type": "status_change", "target": "", "value": "QUALIFIED", "metadata": {}}
        ],
        "is_active": True,
        "priority": 50,
        "created_by_id": None,
        "created_at": None,
        "updated_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)
