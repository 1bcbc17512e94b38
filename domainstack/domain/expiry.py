"""
Expiry monitoring - threshold detection, renewal reset and alerting.

Domain registrations alert at 30, 14, 7 and 1 days remaining;
certificates at 14, 7, 3 and 1. Each threshold is its own notification
type, so every threshold fires at most once per expiry cycle. When the
remaining time moves back beyond the widest threshold (renewal or
reissue) the cycle's records are cleared so the next approach alerts
again.
"""

import logging
from dataclasses import dataclass, field

from .emails import (
    certificate_expiry_summary,
    domain_expiry_summary,
    render_certificate_expiry_email,
    render_domain_expiry_email,
)
from .notifications import NotificationService
from .ownership import difference_in_days, utcnow
from .ports import (
    Clock,
    NotificationCategory,
    NotificationContent,
    NotificationType,
    TrackedDomainRepository,
)

logger = logging.getLogger(__name__)

DOMAIN_EXPIRY_THRESHOLDS = (30, 14, 7, 1)
CERTIFICATE_EXPIRY_THRESHOLDS = (14, 7, 3, 1)

DOMAIN_THRESHOLD_TO_TYPE = {
    30: NotificationType.DOMAIN_EXPIRY_30D,
    14: NotificationType.DOMAIN_EXPIRY_14D,
    7: NotificationType.DOMAIN_EXPIRY_7D,
    1: NotificationType.DOMAIN_EXPIRY_1D,
}
CERTIFICATE_THRESHOLD_TO_TYPE = {
    14: NotificationType.CERTIFICATE_EXPIRY_14D,
    7: NotificationType.CERTIFICATE_EXPIRY_7D,
    3: NotificationType.CERTIFICATE_EXPIRY_3D,
    1: NotificationType.CERTIFICATE_EXPIRY_1D,
}

MAX_DOMAIN_THRESHOLD_DAYS = max(DOMAIN_EXPIRY_THRESHOLDS)
MAX_CERTIFICATE_THRESHOLD_DAYS = max(CERTIFICATE_EXPIRY_THRESHOLDS)


def _tightest_threshold(days_remaining: int, thresholds: tuple[int, ...]) -> int | None:
    for threshold in sorted(thresholds):
        if days_remaining <= threshold:
            return threshold
    return None


def get_domain_expiry_notification_type(days_remaining: int) -> NotificationType | None:
    """
    Return the most urgent domain threshold type that applies, or None.

    Example: 14 days remaining maps to domain_expiry_14d, not 30d.
    Zero and negative values map to domain_expiry_1d.
    """
    threshold = _tightest_threshold(days_remaining, DOMAIN_EXPIRY_THRESHOLDS)
    return DOMAIN_THRESHOLD_TO_TYPE[threshold] if threshold is not None else None


def get_certificate_expiry_notification_type(days_remaining: int) -> NotificationType | None:
    """Return the most urgent certificate threshold type that applies, or None."""
    threshold = _tightest_threshold(days_remaining, CERTIFICATE_EXPIRY_THRESHOLDS)
    return CERTIFICATE_THRESHOLD_TO_TYPE[threshold] if threshold is not None else None


@dataclass(frozen=True)
class ExpiryCheckResult:
    """Outcome of one per-domain expiry check."""

    sent: bool = False
    skipped: bool = False
    reason: str | None = None
    renewed: bool = False
    cleared_count: int = 0
    notification_type: NotificationType | None = None

    @classmethod
    def skip(cls, reason: str) -> "ExpiryCheckResult":
        return cls(skipped=True, reason=reason)

    def as_dict(self) -> dict:
        if self.sent:
            return {"outcome": "sent", "type": self.notification_type.value}
        if self.renewed:
            return {"outcome": "renewed", "cleared_count": self.cleared_count}
        return {"outcome": "skipped", "reason": self.reason}


@dataclass
class ExpiryMonitor:
    """Domain service for the per-domain expiry checks."""

    repository: TrackedDomainRepository
    notifications: NotificationService
    dashboard_url: str
    clock: Clock = field(default=utcnow)

    def check_domain_expiry(self, tracked_domain_id: str) -> ExpiryCheckResult:
        """
        Alert on an approaching registration expiry.

        Raises:
            MailDeliveryError: If the send fails (the step should retry)
        """
        target = self.repository.get_domain_expiry_target(tracked_domain_id)
        if target is None:
            logger.warning("Domain %s not found, skipping expiry check", tracked_domain_id)
            return ExpiryCheckResult.skip("not_found")
        if target.expiration_date is None:
            return ExpiryCheckResult.skip("no_expiration_date")

        days_remaining = difference_in_days(target.expiration_date, self.clock())

        if days_remaining > MAX_DOMAIN_THRESHOLD_DAYS:
            cleared = self.notifications.store.clear_domain_expiry_notifications(tracked_domain_id)
            if cleared:
                logger.info(
                    "Domain %s renewed (%d days remaining), cleared %d expiry notifications",
                    target.domain_name,
                    days_remaining,
                    cleared,
                )
            return ExpiryCheckResult(renewed=True, cleared_count=cleared)

        notification_type = get_domain_expiry_notification_type(days_remaining)
        if notification_type is None:
            return ExpiryCheckResult.skip("no_threshold_met")

        channels = self.notifications.resolve_channels(
            target.user_id,
            target.notification_overrides,
            NotificationCategory.DOMAIN_EXPIRY,
            target.user_email,
        )
        if not channels:
            return ExpiryCheckResult.skip("notifications_disabled")

        if self.notifications.store.has_recent_notification(tracked_domain_id, notification_type):
            return ExpiryCheckResult.skip("already_sent")

        title, summary = domain_expiry_summary(
            target.domain_name, target.expiration_date, days_remaining, target.registrar
        )
        content = NotificationContent(
            user_id=target.user_id,
            title=title,
            message=summary,
            channels=channels,
            data={"domain_name": target.domain_name, "days_remaining": days_remaining},
        )

        def render_and_send(idempotency_key: str) -> str | None:
            message = render_domain_expiry_email(
                to=target.user_email,
                user_name=target.user_name,
                domain_name=target.domain_name,
                expiration_date=target.expiration_date,
                days_remaining=days_remaining,
                notification_type=notification_type,
                registrar=target.registrar,
                dashboard_url=self.dashboard_url,
            )
            return self.notifications.send_email(message, idempotency_key)

        sent = self.notifications.record_and_send(
            tracked_domain_id, notification_type, render_and_send, content
        )
        if not sent:
            return ExpiryCheckResult.skip("already_sent")
        return ExpiryCheckResult(sent=True, notification_type=notification_type)

    def check_certificate_expiry(self, tracked_domain_id: str) -> ExpiryCheckResult:
        """
        Alert on an approaching leaf certificate expiry.

        Raises:
            MailDeliveryError: If the send fails (the step should retry)
        """
        target = self.repository.get_certificate_expiry_target(tracked_domain_id)
        if target is None:
            logger.warning("Certificate for %s not found, skipping expiry check", tracked_domain_id)
            return ExpiryCheckResult.skip("not_found")

        days_remaining = difference_in_days(target.valid_to, self.clock())

        if days_remaining > MAX_CERTIFICATE_THRESHOLD_DAYS:
            cleared = self.notifications.store.clear_certificate_expiry_notifications(tracked_domain_id)
            if cleared:
                logger.info(
                    "Certificate for %s reissued (%d days remaining), cleared %d expiry notifications",
                    target.domain_name,
                    days_remaining,
                    cleared,
                )
            return ExpiryCheckResult(renewed=True, cleared_count=cleared)

        notification_type = get_certificate_expiry_notification_type(days_remaining)
        if notification_type is None:
            return ExpiryCheckResult.skip("no_threshold_met")

        channels = self.notifications.resolve_channels(
            target.user_id,
            target.notification_overrides,
            NotificationCategory.CERTIFICATE_EXPIRY,
            target.user_email,
        )
        if not channels:
            return ExpiryCheckResult.skip("notifications_disabled")

        if self.notifications.store.has_recent_notification(tracked_domain_id, notification_type):
            return ExpiryCheckResult.skip("already_sent")

        title, summary = certificate_expiry_summary(
            target.domain_name, target.valid_to, days_remaining, target.issuer
        )
        content = NotificationContent(
            user_id=target.user_id,
            title=title,
            message=summary,
            channels=channels,
            data={"domain_name": target.domain_name, "days_remaining": days_remaining},
        )

        def render_and_send(idempotency_key: str) -> str | None:
            message = render_certificate_expiry_email(
                to=target.user_email,
                user_name=target.user_name,
                domain_name=target.domain_name,
                valid_to=target.valid_to,
                days_remaining=days_remaining,
                notification_type=notification_type,
                issuer=target.issuer,
                dashboard_url=self.dashboard_url,
            )
            return self.notifications.send_email(message, idempotency_key)

        sent = self.notifications.record_and_send(
            tracked_domain_id, notification_type, render_and_send, content
        )
        if not sent:
            return ExpiryCheckResult.skip("already_sent")
        return ExpiryCheckResult(sent=True, notification_type=notification_type)
