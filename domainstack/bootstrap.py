"""
Object graph wiring shared by the API and the worker.

build_container() turns settings plus a connection pool into the
domain services with their adapters attached.
"""

import logging
from dataclasses import dataclass

import httpx
from psycopg_pool import ConnectionPool

from domainstack.adapters.mail.console import ConsoleMailer
from domainstack.adapters.mail.resend import ResendMailer
from domainstack.adapters.repository.postgres import (
    PostgresNotificationStore,
    PostgresPreferenceStore,
    PostgresTrackedDomainRepository,
)
from domainstack.adapters.verifiers import DnsTxtVerifier, HtmlFileVerifier, MetaTagVerifier, SafeFetcher
from domainstack.config.settings import Settings
from domainstack.domain.expiry import ExpiryMonitor
from domainstack.domain.notifications import NotificationService
from domainstack.domain.ownership import OwnershipService
from domainstack.domain.ports import Mailer
from domainstack.domain.scheduler import Dispatcher, RevalidationScheduler, VerificationJobs
from domainstack.domain.tracking import TrackingService
from domainstack.domain.verification import VerificationService

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Fully wired services for one process."""

    repository: PostgresTrackedDomainRepository
    notifications: NotificationService
    verification: VerificationService
    tracking: TrackingService
    ownership: OwnershipService
    expiry: ExpiryMonitor
    scheduler: RevalidationScheduler | None
    jobs: VerificationJobs


def build_mailer(settings: Settings) -> Mailer:
    """Pick the mail backend named in settings."""
    if settings.mail_backend == "resend":
        if not settings.resend_api_key:
            raise ValueError("RESEND_API_KEY is required when MAIL_BACKEND=resend")
        return ResendMailer(
            api_key=settings.resend_api_key,
            sender=settings.mail_from,
            base_url=settings.resend_api_url,
        )
    return ConsoleMailer()


def build_verification_service(settings: Settings) -> VerificationService:
    client = httpx.Client(headers={"User-Agent": settings.user_agent})
    fetcher = SafeFetcher(client=client)
    return VerificationService(
        dns_txt=DnsTxtVerifier(
            client=client,
            timeout=settings.doh_timeout_seconds,
            retries=settings.doh_retries,
            backoff=settings.doh_backoff_seconds,
        ),
        html_file=HtmlFileVerifier(fetcher, timeout=settings.html_file_timeout_seconds),
        meta_tag=MetaTagVerifier(fetcher, timeout=settings.meta_tag_timeout_seconds),
    )


def build_container(
    pool: ConnectionPool,
    settings: Settings,
    dispatcher: Dispatcher | None = None,
) -> Container:
    """
    Wire every service against Postgres and the configured mail backend.

    Args:
        pool: Open psycopg3 connection pool
        settings: Application settings
        dispatcher: Job dispatcher for auto-verify chaining and scheduler
            passes; without one, the scheduler is not built
    """
    repository = PostgresTrackedDomainRepository(pool)
    notifications = NotificationService(
        store=PostgresNotificationStore(pool),
        preferences=PostgresPreferenceStore(pool),
        mailer=build_mailer(settings),
    )
    verification = build_verification_service(settings)
    dashboard_url = f"{settings.app_base_url.rstrip('/')}/dashboard"

    ownership = OwnershipService(
        repository=repository,
        notifications=notifications,
        dashboard_url=dashboard_url,
        grace_period_days=settings.grace_period_days,
    )
    logger.info("Services wired (mail_backend=%s)", settings.mail_backend)
    return Container(
        repository=repository,
        notifications=notifications,
        verification=verification,
        tracking=TrackingService(
            repository=repository,
            verification=verification,
            dispatcher=dispatcher,
            max_domains=settings.max_tracked_domains,
        ),
        ownership=ownership,
        expiry=ExpiryMonitor(repository=repository, notifications=notifications, dashboard_url=dashboard_url),
        scheduler=(
            RevalidationScheduler(
                repository=repository,
                dispatcher=dispatcher,
                stale_unverified_days=settings.stale_unverified_days,
            )
            if dispatcher is not None
            else None
        ),
        jobs=VerificationJobs(
            repository=repository,
            verification=verification,
            ownership=ownership,
            dispatcher=dispatcher,
        ),
    )
