"""
Ownership state machine - grace-period handling for re-verification.

States (stored in verification_status):
- unverified: Initial state, no proof seen yet
- verified: Proof seen; re-checked on every scheduled pass
- failing: A re-check failed; verification_failed_at starts the grace clock

Transitions:
    unverified -> verified      (any executor succeeds)
    verified   -> failing       (first failed re-check, warning email)
    failing    -> verified      (re-check succeeds, silent recovery)
    failing    -> revoked       (grace period elapsed, revoked email)

Revocation clears verified status and the method; it is the end of the
monitored lifecycle rather than a stored state.

The decision is a pure function of (status, failed_at, now) so it can
be tested without storage. OwnershipService applies the decision.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

from .emails import (
    render_verification_failing_email,
    render_verification_revoked_email,
    verification_failing_summary,
    verification_revoked_summary,
)
from .notifications import NotificationService
from .ports import (
    Clock,
    NotificationCategory,
    NotificationContent,
    NotificationType,
    TrackedDomain,
    TrackedDomainRepository,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

GRACE_PERIOD_DAYS = 7


class FailureAction(str, Enum):
    """Outcome of one failed re-verification."""

    MARKED_FAILING = "marked_failing"
    REVOKED = "revoked"
    IN_GRACE_PERIOD = "in_grace_period"


def utcnow() -> datetime:
    return datetime.now(UTC)


def difference_in_days(later: datetime, earlier: datetime) -> int:
    """Whole days between two instants, truncated toward zero."""
    return int((later - earlier) / timedelta(days=1))


def decide_failure_action(
    status: VerificationStatus | str,
    failed_at: datetime | None,
    now: datetime,
    grace_period_days: int = GRACE_PERIOD_DAYS,
) -> FailureAction:
    """
    Decide what a failed re-check does to a tracked domain.

    Args:
        status: Current verification status
        failed_at: When the current failure episode started, if known
        now: Evaluation instant
        grace_period_days: Days a failing domain keeps its verification

    Returns:
        MARKED_FAILING for a verified domain (or a failing one missing its
        timestamp), REVOKED once the grace period has fully elapsed,
        IN_GRACE_PERIOD otherwise
    """
    status = VerificationStatus(status)
    if status == VerificationStatus.VERIFIED:
        return FailureAction.MARKED_FAILING
    if status == VerificationStatus.FAILING:
        if failed_at is None:
            return FailureAction.MARKED_FAILING
        if difference_in_days(now, failed_at) >= grace_period_days:
            return FailureAction.REVOKED
    return FailureAction.IN_GRACE_PERIOD


@dataclass
class OwnershipService:
    """
    Domain service applying state machine transitions.

    Alerts are dispatched before the state write: if the send fails the
    exception propagates with the domain still in its previous state, so
    the retried job re-enters the same transition and re-sends under the
    same idempotency key.
    """

    repository: TrackedDomainRepository
    notifications: NotificationService
    dashboard_url: str
    grace_period_days: int = GRACE_PERIOD_DAYS
    clock: Clock = field(default=utcnow)

    def record_success(self, domain: TrackedDomain) -> None:
        """Apply a successful re-check (failing -> verified recovers silently)."""
        if domain.verification_status == VerificationStatus.FAILING:
            logger.info("Domain %s recovered verification", domain.domain_name)
        self.repository.mark_verification_successful(domain.id)

    def handle_verification_failure(self, domain: TrackedDomain) -> FailureAction:
        """
        Apply a failed re-check to a verified or failing domain.

        Args:
            domain: Tracked domain joined with its name and owner details

        Returns:
            The FailureAction taken
        """
        now = self.clock()
        action = decide_failure_action(
            domain.verification_status,
            domain.verification_failed_at,
            now,
            self.grace_period_days,
        )

        if action == FailureAction.MARKED_FAILING:
            if domain.verification_status == VerificationStatus.VERIFIED:
                self._alert_failing(domain)
            else:
                logger.warning(
                    "Domain %s was failing without a failure timestamp, stamping now",
                    domain.id,
                )
            self.repository.mark_verification_failing(domain.id)
            logger.info("Marked domain %s (%s) as failing verification", domain.id, domain.domain_name)
        elif action == FailureAction.REVOKED:
            self._alert_revoked(domain)
            self.repository.revoke_verification(domain.id)
            logger.info(
                "Revoked domain verification for %s (%s) after grace period",
                domain.id,
                domain.domain_name,
            )
        else:
            days_failing = (
                difference_in_days(now, domain.verification_failed_at)
                if domain.verification_failed_at
                else 0
            )
            logger.debug(
                "Domain %s still in grace period (%d of %d days)",
                domain.domain_name,
                days_failing,
                self.grace_period_days,
            )

        return action

    def _channels(self, domain: TrackedDomain) -> tuple[str, ...]:
        channels = self.notifications.resolve_channels(
            domain.user_id,
            domain.notification_overrides,
            NotificationCategory.VERIFICATION_STATUS,
            domain.user_email,
        )
        if channels and not domain.user_email:
            logger.warning("No email address for owner of %s, alerting in-app only", domain.id)
        return channels

    def _alert_failing(self, domain: TrackedDomain) -> bool:
        channels = self._channels(domain)
        if not channels:
            return False

        title, summary = verification_failing_summary(domain.domain_name, self.grace_period_days)
        content = NotificationContent(
            user_id=domain.user_id,
            title=title,
            message=summary,
            channels=channels,
            data={"domain_name": domain.domain_name},
        )

        def render_and_send(idempotency_key: str) -> str | None:
            message = render_verification_failing_email(
                to=domain.user_email,
                user_name=domain.user_name,
                domain_name=domain.domain_name,
                verification_method=domain.verification_method,
                grace_period_days=self.grace_period_days,
                dashboard_url=self.dashboard_url,
            )
            return self.notifications.send_email(message, idempotency_key)

        return self.notifications.record_and_send(
            domain.id, NotificationType.VERIFICATION_FAILING, render_and_send, content
        )

    def _alert_revoked(self, domain: TrackedDomain) -> bool:
        channels = self._channels(domain)
        if not channels:
            return False

        title, summary = verification_revoked_summary(domain.domain_name)
        content = NotificationContent(
            user_id=domain.user_id,
            title=title,
            message=summary,
            channels=channels,
            data={"domain_name": domain.domain_name},
        )

        def render_and_send(idempotency_key: str) -> str | None:
            message = render_verification_revoked_email(
                to=domain.user_email,
                user_name=domain.user_name,
                domain_name=domain.domain_name,
                dashboard_url=self.dashboard_url,
            )
            return self.notifications.send_email(message, idempotency_key)

        return self.notifications.record_and_send(
            domain.id, NotificationType.VERIFICATION_REVOKED, render_and_send, content
        )
