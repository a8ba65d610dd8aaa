"""
Shared fixtures.

Repository tests run against a throwaway sqlite database per
test; everything else uses in-memory fakes and mocks.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from core.clock import MockClock
from storage.database import (
    DatabaseConfig,
    create_all_tables,
    create_engine_from_config,
    create_session_factory,
)


NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed evaluation time (a Wednesday)."""
    return NOW


@pytest.fixture
def clock():
    return MockClock(NOW)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh sqlite database with every table created."""
    engine = create_engine_from_config(
        DatabaseConfig(url=f"sqlite+aiosqlite:///{tmp_path / 'fusion.db'}")
    )
    await create_all_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)
