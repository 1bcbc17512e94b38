"""
Domain exceptions - Semantic error types for tracking, jobs and mail.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
The API layer maps TrackingError subclasses to HTTP status codes;
background workers use the JobError split to decide on retries.
"""


class TrackingError(Exception):
    """Base class for tracked-domain business rule violations."""

    pass


class InvalidDomain(TrackingError):
    """Input could not be normalized to a registrable domain."""

    pass


class DomainAlreadyTracked(TrackingError):
    """The user already holds a verified claim on this domain."""

    pass


class DomainLimitReached(TrackingError):
    """The user reached their active tracked-domain limit."""

    def __init__(self, limit: int):
        super().__init__(f"You have reached your limit of {limit} tracked domains")
        self.limit = limit


class TrackedDomainNotFound(TrackingError):
    """No tracked domain with the given id."""

    pass


class NotDomainOwner(TrackingError):
    """The tracked domain belongs to another user."""

    pass


class JobError(Exception):
    """Base class for errors raised inside background jobs."""

    pass


class RetryableError(JobError):
    """Transient failure; the job runner should retry with backoff."""

    pass


class FatalError(JobError):
    """Permanent failure; retrying cannot help."""

    pass


class MailDeliveryError(RetryableError):
    """The mail provider rejected or failed to accept a message."""

    pass


def is_retryable(exc: BaseException) -> bool:
    """
    Decide whether a job failure is worth retrying.

    FatalError is never retried. RetryableError and unclassified
    exceptions (network blips, database hiccups) are.
    """
    if isinstance(exc, FatalError):
        return False
    return isinstance(exc, Exception)
