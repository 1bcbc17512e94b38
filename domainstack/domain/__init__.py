"""
Domain layer - Pure business logic behind framework-free ports.

This package contains the ownership verification engine: the
verification orchestrator, the ownership state machine, the
notification idempotency engine, expiry monitoring and the
revalidation scheduler. Infrastructure is reached only through the
Protocol ports in ports.py.
"""

from .exceptions import (
    DomainAlreadyTracked,
    DomainLimitReached,
    FatalError,
    InvalidDomain,
    JobError,
    MailDeliveryError,
    NotDomainOwner,
    RetryableError,
    TrackedDomainNotFound,
    TrackingError,
    is_retryable,
)
from .expiry import ExpiryCheckResult, ExpiryMonitor
from .notifications import NotificationService, generate_idempotency_key
from .ownership import GRACE_PERIOD_DAYS, FailureAction, OwnershipService, decide_failure_action
from .ports import (
    NotificationCategory,
    NotificationType,
    TrackedDomain,
    VerificationMethod,
    VerificationResult,
    VerificationStatus,
)
from .scheduler import Job, JobContext, RevalidationScheduler, VerificationJobs
from .tracking import AddDomainResult, TrackingService
from .verification import VerificationService

__all__ = [
    "AddDomainResult",
    "DomainAlreadyTracked",
    "DomainLimitReached",
    "ExpiryCheckResult",
    "ExpiryMonitor",
    "FailureAction",
    "FatalError",
    "GRACE_PERIOD_DAYS",
    "InvalidDomain",
    "Job",
    "JobContext",
    "JobError",
    "MailDeliveryError",
    "NotDomainOwner",
    "NotificationCategory",
    "NotificationService",
    "NotificationType",
    "OwnershipService",
    "RetryableError",
    "RevalidationScheduler",
    "TrackedDomain",
    "TrackedDomainNotFound",
    "TrackingError",
    "TrackingService",
    "VerificationJobs",
    "VerificationMethod",
    "VerificationResult",
    "VerificationService",
    "VerificationStatus",
    "decide_failure_action",
    "generate_idempotency_key",
    "is_retryable",
]
