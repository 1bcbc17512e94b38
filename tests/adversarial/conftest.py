"""
Shared fixtures for adversarial tests.

Provides a migrated PostgreSQL pool sized for concurrent workers.
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool

from tests.postgres import open_pool_or_skip, reset_database

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for adversarial tests."""
    pool = open_pool_or_skip(max_size=20)
    yield pool
    pool.close()


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty every table before each test."""
    reset_database(pool)
    yield
