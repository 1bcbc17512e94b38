"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the value types the domain works with and the
interfaces (ports) it requires from infrastructure. Adapters implement
these protocols through structural subtyping.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol


class VerificationMethod(str, Enum):
    """
    Closed set of ownership proofs, in fixed priority order.

    - DNS_TXT: TXT record "domainstack-verify=<token>" on the domain
    - HTML_FILE: file under /.well-known/domainstack-verify/
    - META_TAG: <meta name="domainstack-verify"> on the homepage
    """

    DNS_TXT = "dns_txt"
    HTML_FILE = "html_file"
    META_TAG = "meta_tag"


class VerificationStatus(str, Enum):
    """
    Ownership State Machine states for a tracked domain.

    State Transitions:
    - UNVERIFIED -> VERIFIED (any method proves ownership)
    - VERIFIED -> FAILING (first failed re-check)
    - FAILING -> VERIFIED (re-check succeeds, silent recovery)
    - FAILING -> UNVERIFIED (grace period elapsed, verification revoked)

    Revocation is not a stored state of its own: it ends the monitored
    lifecycle by clearing verified status.
    """

    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    FAILING = "failing"


class NotificationCategory(str, Enum):
    """Preference categories a user can switch on or off."""

    DOMAIN_EXPIRY = "domain_expiry"
    CERTIFICATE_EXPIRY = "certificate_expiry"
    VERIFICATION_STATUS = "verification_status"
    REGISTRATION_CHANGES = "registration_changes"
    PROVIDER_CHANGES = "provider_changes"
    CERTIFICATE_CHANGES = "certificate_changes"


class NotificationType(str, Enum):
    """Closed set of notifications that can be dispatched for a tracked domain."""

    DOMAIN_EXPIRY_30D = "domain_expiry_30d"
    DOMAIN_EXPIRY_14D = "domain_expiry_14d"
    DOMAIN_EXPIRY_7D = "domain_expiry_7d"
    DOMAIN_EXPIRY_1D = "domain_expiry_1d"
    CERTIFICATE_EXPIRY_14D = "certificate_expiry_14d"
    CERTIFICATE_EXPIRY_7D = "certificate_expiry_7d"
    CERTIFICATE_EXPIRY_3D = "certificate_expiry_3d"
    CERTIFICATE_EXPIRY_1D = "certificate_expiry_1d"
    VERIFICATION_FAILING = "verification_failing"
    VERIFICATION_REVOKED = "verification_revoked"
    REGISTRATION_CHANGE = "registration_change"
    PROVIDER_CHANGE = "provider_change"
    CERTIFICATE_CHANGE = "certificate_change"

    @property
    def category(self) -> NotificationCategory:
        """Preference category that governs this notification."""
        if self.value.startswith("domain_expiry_"):
            return NotificationCategory.DOMAIN_EXPIRY
        if self.value.startswith("certificate_expiry_"):
            return NotificationCategory.CERTIFICATE_EXPIRY
        return _CATEGORY_BY_TYPE[self]


_CATEGORY_BY_TYPE = {
    NotificationType.VERIFICATION_FAILING: NotificationCategory.VERIFICATION_STATUS,
    NotificationType.VERIFICATION_REVOKED: NotificationCategory.VERIFICATION_STATUS,
    NotificationType.REGISTRATION_CHANGE: NotificationCategory.REGISTRATION_CHANGES,
    NotificationType.PROVIDER_CHANGE: NotificationCategory.PROVIDER_CHANGES,
    NotificationType.CERTIFICATE_CHANGE: NotificationCategory.CERTIFICATE_CHANGES,
}


@dataclass(frozen=True)
class VerificationResult:
    """
    Outcome of one verification attempt. Ephemeral, never persisted.

    Returned by every executor and by the orchestrator.
    """

    verified: bool
    method: VerificationMethod | None = None
    error: str | None = None

    @classmethod
    def success(cls, method: VerificationMethod) -> "VerificationResult":
        return cls(verified=True, method=method)

    @classmethod
    def failure(cls, error: str | None = None) -> "VerificationResult":
        return cls(verified=False, method=None, error=error)


@dataclass
class TrackedDomain:
    """A user's claim to monitor one registrable domain."""

    id: str
    user_id: str
    domain_id: str
    verification_token: str
    domain_name: str | None = None
    verification_method: VerificationMethod | None = None
    verified: bool = False
    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    verification_failed_at: datetime | None = None
    archived_at: datetime | None = None
    notification_overrides: dict[str, bool] = field(default_factory=dict)
    user_email: str | None = None
    user_name: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class DomainExpiryTarget:
    """Verified tracked domain with a known registration expiry."""

    tracked_domain_id: str
    user_id: str
    user_email: str
    user_name: str
    domain_name: str
    expiration_date: datetime | None
    registrar: str | None = None
    notification_overrides: dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class CertificateExpiryTarget:
    """Verified tracked domain with a known leaf certificate expiry."""

    tracked_domain_id: str
    user_id: str
    user_email: str
    user_name: str
    domain_name: str
    valid_to: datetime
    issuer: str | None = None
    notification_overrides: dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationContent:
    """
    What the user sees for one notification.

    channels lists where it is delivered: "email" and/or "in-app". The
    record doubles as the in-app inbox entry when "in-app" is present.
    """

    user_id: str
    title: str
    message: str
    channels: tuple[str, ...]
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationRecord:
    """
    Deduplication lock: this (tracked domain, type) has been dispatched.

    Also carries the rendered content shown in the in-app inbox.
    """

    id: str
    tracked_domain_id: str
    type: NotificationType
    created_at: datetime
    external_message_id: str | None = None
    user_id: str | None = None
    title: str = ""
    message: str = ""
    channels: tuple[str, ...] = ()
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationPreferences:
    """Global per-category switches. Every category defaults to on."""

    domain_expiry: bool = True
    certificate_expiry: bool = True
    verification_status: bool = True
    registration_changes: bool = True
    provider_changes: bool = True
    certificate_changes: bool = True

    def is_enabled(self, category: NotificationCategory) -> bool:
        return bool(getattr(self, category.value, True))


@dataclass(frozen=True)
class EmailMessage:
    """Rendered email ready for a mailer."""

    to: str
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class SendResult:
    """Mailer response: provider message id on success, error text otherwise."""

    message_id: str | None = None
    error: str | None = None


class VerificationExecutor(Protocol):
    """Port interface for one ownership proof method."""

    def verify(self, domain: str, token: str) -> VerificationResult:
        """
        Check whether the domain currently presents evidence of the token.

        Args:
            domain: Registrable domain name (lowercase)
            token: 32-char hex verification token

        Returns:
            VerificationResult; never persists state
        """
        ...


class TrackedDomainRepository(Protocol):
    """Port interface for tracked domain persistence."""

    def ensure_domain(self, name: str) -> str:
        """Return the id of the deduplicated Domain row, creating it if absent."""
        ...

    def find_tracked_domain(self, user_id: str, domain_id: str) -> TrackedDomain | None: ...

    def find_tracked_domain_by_id(self, tracked_domain_id: str) -> TrackedDomain | None: ...

    def find_tracked_domain_with_domain_name(self, tracked_domain_id: str) -> TrackedDomain | None:
        """Fetch a claim joined with its domain name and owner contact details."""
        ...

    def count_active_tracked_domains(self, user_id: str) -> int: ...

    def create_tracked_domain(
        self, user_id: str, domain_id: str, verification_token: str
    ) -> TrackedDomain | None:
        """
        Insert a new claim.

        Returns:
            The created claim, or None if (user_id, domain_id) already exists
            (unique-constraint race lost)
        """
        ...

    def verify_tracked_domain(self, tracked_domain_id: str, method: VerificationMethod) -> None: ...

    def mark_verification_failing(self, tracked_domain_id: str) -> None:
        """Set status to failing; keep an existing failure timestamp, else stamp now."""
        ...

    def mark_verification_successful(self, tracked_domain_id: str) -> None: ...

    def revoke_verification(self, tracked_domain_id: str) -> None: ...

    def get_pending_tracked_domain_ids(self) -> list[str]: ...

    def get_verified_tracked_domain_ids(self) -> list[str]: ...

    def get_verified_tracked_domains_with_expiry(self) -> list[DomainExpiryTarget]: ...

    def get_verified_tracked_domains_certificates(self) -> list[CertificateExpiryTarget]: ...

    def get_domain_expiry_target(self, tracked_domain_id: str) -> DomainExpiryTarget | None: ...

    def get_certificate_expiry_target(self, tracked_domain_id: str) -> CertificateExpiryTarget | None: ...

    def delete_stale_unverified_domains(self, cutoff: datetime) -> int: ...


class NotificationStore(Protocol):
    """Port interface for the notification deduplication table."""

    def create_notification(
        self,
        tracked_domain_id: str,
        notification_type: NotificationType,
        content: NotificationContent | None = None,
    ) -> NotificationRecord | None:
        """
        Insert-if-absent on (tracked_domain_id, type).

        Args:
            tracked_domain_id: Entity the notification is about
            notification_type: Notification type being claimed
            content: Title, message, data and channels stored on the record

        Returns:
            The new record, or None when one already exists (never raises
            for duplicates)
        """
        ...

    def has_notification_been_sent(
        self, tracked_domain_id: str, notification_type: NotificationType
    ) -> bool: ...

    def has_recent_notification(
        self, tracked_domain_id: str, notification_type: NotificationType, days: int = 30
    ) -> bool: ...

    def update_notification_resend_id(
        self, tracked_domain_id: str, notification_type: NotificationType, message_id: str
    ) -> bool: ...

    def release_notification(
        self, tracked_domain_id: str, notification_type: NotificationType
    ) -> bool:
        """Delete the record only while it has no external message id."""
        ...

    def clear_domain_expiry_notifications(self, tracked_domain_id: str) -> int: ...

    def clear_certificate_expiry_notifications(self, tracked_domain_id: str) -> int: ...


class PreferenceStore(Protocol):
    """Port interface for global user notification preferences."""

    def get_or_create_user_notification_preferences(self, user_id: str) -> NotificationPreferences: ...


class Mailer(Protocol):
    """Port interface for outbound email."""

    def send_pretty_email(self, message: EmailMessage, idempotency_key: str | None = None) -> SendResult:
        """
        Deliver an email.

        Implementations must forward the idempotency key so provider-side
        retries are deduplicated.
        """
        ...


Clock = Callable[[], datetime]
