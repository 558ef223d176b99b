import pytest
from uuid import uuid4

from tests.utils import InMemoryDatabaseService, create_test_players


@pytest.fixture
def db_service():
    """Create an in-memory database service for testing."""
    return InMemoryDatabaseService()


@pytest.fixture
def event_id():
    return uuid4()


@pytest.fixture
async def three_players(db_service):
    """Alice, Bob and Carol: one pair plus an umpire."""
    return await create_test_players(db_service, 3)


@pytest.fixture
async def four_players(db_service):
    return await create_test_players(db_service, 4)
