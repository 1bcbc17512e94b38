"""
Notification engine - preference resolution and idempotent dispatch.

Every outbound alert goes through record_and_send(), which claims a
deduplication record for (tracked domain, type) before any external
send. The record insert is the only cross-worker coordination point:
concurrent dispatches for the same pair resolve to one winner.

The same (tracked domain, type) pair also yields the idempotency key
handed to the mail provider, so a retried step cannot produce a second
message even when the claim already exists.

A notification reaches the user through one or both channels. The
in-app channel is the stored record itself (title, message, data); the
email channel is the rendered message sent through the mailer.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .exceptions import MailDeliveryError
from .ports import (
    EmailMessage,
    Mailer,
    NotificationCategory,
    NotificationContent,
    NotificationStore,
    NotificationType,
    PreferenceStore,
)

logger = logging.getLogger(__name__)

CHANNEL_EMAIL = "email"
CHANNEL_IN_APP = "in-app"

CRITICAL_TYPES = frozenset(
    {
        NotificationType.DOMAIN_EXPIRY_1D,
        NotificationType.CERTIFICATE_EXPIRY_1D,
        NotificationType.VERIFICATION_REVOKED,
    }
)
WARNING_TYPES = frozenset(
    {
        NotificationType.DOMAIN_EXPIRY_7D,
        NotificationType.CERTIFICATE_EXPIRY_7D,
        NotificationType.CERTIFICATE_EXPIRY_3D,
        NotificationType.VERIFICATION_FAILING,
    }
)


def generate_idempotency_key(*parts: str) -> str:
    """Join parts into a stable key, e.g. "<tracked_domain_id>:<type>"."""
    return ":".join(str(part) for part in parts)


def get_notification_severity(notification_type: NotificationType | str) -> str:
    """Return "critical", "warning" or "info" for a notification type."""
    notification_type = NotificationType(notification_type)
    if notification_type in CRITICAL_TYPES:
        return "critical"
    if notification_type in WARNING_TYPES:
        return "warning"
    return "info"


@dataclass
class NotificationService:
    """
    Domain service for deduplicated, retry-safe notification delivery.

    Attributes:
        store: Deduplication record persistence
        preferences: Global per-user preference lookup
        mailer: Outbound email port
    """

    store: NotificationStore
    preferences: PreferenceStore
    mailer: Mailer

    def should_notify(
        self,
        user_id: str,
        overrides: dict[str, bool] | None,
        category: NotificationCategory,
    ) -> bool:
        """
        Resolve whether a category is enabled for one tracked domain.

        A per-domain override wins when present; otherwise the user's
        global preference applies. Missing settings default to on.
        """
        override = (overrides or {}).get(category.value)
        if override is not None:
            return bool(override)
        prefs = self.preferences.get_or_create_user_notification_preferences(user_id)
        return prefs.is_enabled(category)

    def resolve_channels(
        self,
        user_id: str,
        overrides: dict[str, bool] | None,
        category: NotificationCategory,
        user_email: str | None,
    ) -> tuple[str, ...]:
        """
        Pick the delivery channels for one notification.

        Returns an empty tuple when the category is switched off. Email
        is only included when the owner has an address on file.
        """
        if not self.should_notify(user_id, overrides, category):
            return ()
        if not user_email:
            return (CHANNEL_IN_APP,)
        return (CHANNEL_EMAIL, CHANNEL_IN_APP)

    def record_and_send(
        self,
        tracked_domain_id: str,
        notification_type: NotificationType,
        render_and_send: Callable[[str], str | None],
        content: NotificationContent | None = None,
    ) -> bool:
        """
        Claim the (tracked domain, type) record, then send exactly once.

        Args:
            tracked_domain_id: Entity the notification is about
            notification_type: Notification type being dispatched
            render_and_send: Called with the idempotency key; returns the
                provider message id (or None when the provider returns none)
            content: In-app content and channels stored with the claim.
                Without content the notification is email only.

        Returns:
            True if this call recorded the notification, False if a record
            already existed and nothing was sent

        Raises:
            Whatever render_and_send raises, after the claim is released
            so the caller's retry can claim again
        """
        record = self.store.create_notification(tracked_domain_id, notification_type, content)
        if record is None:
            logger.debug(
                "Notification %s already recorded for %s, skipping",
                notification_type.value,
                tracked_domain_id,
            )
            return False

        if content is not None and CHANNEL_EMAIL not in content.channels:
            logger.info(
                "Recorded in-app %s notification for %s",
                notification_type.value,
                tracked_domain_id,
            )
            return True

        idempotency_key = generate_idempotency_key(tracked_domain_id, notification_type.value)
        try:
            message_id = render_and_send(idempotency_key)
        except Exception:
            logger.error(
                "Error sending %s notification (idempotency_key=%s)",
                notification_type.value,
                idempotency_key,
                exc_info=True,
            )
            self.store.release_notification(tracked_domain_id, notification_type)
            raise

        if message_id:
            self.store.update_notification_resend_id(tracked_domain_id, notification_type, message_id)
        logger.info(
            "Sent %s notification for %s (message_id=%s)",
            notification_type.value,
            tracked_domain_id,
            message_id,
        )
        return True

    def send_email(self, message: EmailMessage, idempotency_key: str) -> str | None:
        """
        Deliver through the mailer, turning provider errors into exceptions.

        Raises:
            MailDeliveryError: If the mailer reports an error
        """
        result = self.mailer.send_pretty_email(message, idempotency_key=idempotency_key)
        if result.error:
            raise MailDeliveryError(f"Mail provider error: {result.error}")
        return result.message_id
