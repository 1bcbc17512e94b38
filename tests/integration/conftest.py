"""Fixtures for integration tests against PostgreSQL."""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool

from domainstack.adapters.repository.postgres import (
    PostgresNotificationStore,
    PostgresPreferenceStore,
    PostgresTrackedDomainRepository,
)
from tests.postgres import open_pool_or_skip, reset_database


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    pool = open_pool_or_skip()
    yield pool
    pool.close()


@pytest.fixture
def clean_database(pool: ConnectionPool) -> None:
    reset_database(pool)


@pytest.fixture
def pg_repository(pool: ConnectionPool, clean_database) -> PostgresTrackedDomainRepository:
    return PostgresTrackedDomainRepository(pool)


@pytest.fixture
def pg_store(pool: ConnectionPool, clean_database) -> PostgresNotificationStore:
    return PostgresNotificationStore(pool)


@pytest.fixture
def pg_preferences(pool: ConnectionPool, clean_database) -> PostgresPreferenceStore:
    return PostgresPreferenceStore(pool)
