"""Repository adapters - Database implementations."""

from .postgres import (
    PostgresNotificationStore,
    PostgresPreferenceStore,
    PostgresTrackedDomainRepository,
    run_migrations,
)

__all__ = [
    "PostgresNotificationStore",
    "PostgresPreferenceStore",
    "PostgresTrackedDomainRepository",
    "run_migrations",
]
