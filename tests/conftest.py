"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory ports wired into the domain services
- A controllable clock
- Stub verification executors
"""

import pytest

from domainstack.domain.expiry import ExpiryMonitor
from domainstack.domain.notifications import NotificationService
from domainstack.domain.ownership import OwnershipService
from domainstack.domain.ports import VerificationResult
from domainstack.domain.scheduler import VerificationJobs
from domainstack.domain.verification import VerificationService
from tests.fakes import (
    FixedClock,
    InMemoryNotificationStore,
    InMemoryPreferenceStore,
    InMemoryTrackedDomainRepository,
    RecordingDispatcher,
    RecordingMailer,
    StubExecutor,
)

DASHBOARD_URL = "https://domainstack.test/dashboard"


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def repository(clock: FixedClock) -> InMemoryTrackedDomainRepository:
    return InMemoryTrackedDomainRepository(clock)


@pytest.fixture
def store(clock: FixedClock) -> InMemoryNotificationStore:
    return InMemoryNotificationStore(clock)


@pytest.fixture
def preferences() -> InMemoryPreferenceStore:
    return InMemoryPreferenceStore()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def notifications(store, preferences, mailer) -> NotificationService:
    return NotificationService(store=store, preferences=preferences, mailer=mailer)


@pytest.fixture
def ownership(repository, notifications, clock) -> OwnershipService:
    return OwnershipService(
        repository=repository,
        notifications=notifications,
        dashboard_url=DASHBOARD_URL,
        clock=clock,
    )


@pytest.fixture
def expiry(repository, notifications, clock) -> ExpiryMonitor:
    return ExpiryMonitor(
        repository=repository,
        notifications=notifications,
        dashboard_url=DASHBOARD_URL,
        clock=clock,
    )


@pytest.fixture
def executors() -> dict[str, StubExecutor]:
    """Executors that fail by default; tests flip individual results."""
    return {
        "dns_txt": StubExecutor(VerificationResult.failure()),
        "html_file": StubExecutor(VerificationResult.failure()),
        "meta_tag": StubExecutor(VerificationResult.failure()),
    }


@pytest.fixture
def verification(executors) -> VerificationService:
    return VerificationService(**executors)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def jobs(repository, verification, ownership, dispatcher) -> VerificationJobs:
    return VerificationJobs(
        repository=repository,
        verification=verification,
        ownership=ownership,
        dispatcher=dispatcher,
    )
