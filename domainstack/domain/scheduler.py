"""
Revalidation scheduler - enumerate-and-dispatch plus per-domain jobs.

The scheduler side only lists candidate ids and hands one unit of work
per id to a Dispatcher. It never waits on outcomes and never retries
on a unit's behalf. Per-domain units (VerificationJobs) are small,
independently retryable steps that each return a JSON-friendly dict
with an "outcome" key.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from .ownership import OwnershipService
from .ports import Clock, TrackedDomainRepository, VerificationStatus
from .verification import VerificationService

# Auto-verify checks after a new claim: 1m, 3m, 10m, 30m, 1h
AUTO_VERIFY_DELAYS = (60, 180, 600, 1800, 3600)

# Per-domain job retries back off 10s, 20s, 40s, ...
RETRY_BASE_SECONDS = 10


class Job(str, Enum):
    """Units of work the scheduler can dispatch, one tracked domain each."""

    VERIFY_PENDING = "verify_pending_domain"
    REVERIFY_OWNERSHIP = "reverify_ownership"
    DOMAIN_EXPIRY = "check_domain_expiry"
    CERTIFICATE_EXPIRY = "check_certificate_expiry"
    AUTO_VERIFY = "auto_verify_pending_domain"


class Dispatcher(Protocol):
    """Port interface for handing a unit of work to a runner."""

    def dispatch(
        self,
        job: Job,
        tracked_domain_id: str,
        *,
        attempt: int = 0,
        countdown: float | None = None,
    ) -> None:
        """Queue one job; returns without waiting for it to run."""
        ...


class _RunLoggerAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[{self.extra['run_id']}] {msg}", kwargs


@dataclass
class JobContext:
    """Per-run context handed to scheduler passes."""

    name: str
    run_id: str
    started_at: datetime
    logger: logging.LoggerAdapter

    @classmethod
    def start(cls, name: str, clock: Clock) -> "JobContext":
        run_id = uuid.uuid4().hex[:12]
        adapter = _RunLoggerAdapter(logging.getLogger(f"domainstack.jobs.{name}"), {"run_id": run_id})
        return cls(name=name, run_id=run_id, started_at=clock(), logger=adapter)


@dataclass
class PassSummary:
    """Aggregate counts reported by one scheduler pass."""

    scheduled: dict[str, int] = field(default_factory=dict)
    errors: int = 0

    @property
    def total(self) -> int:
        return sum(self.scheduled.values())

    def as_dict(self) -> dict:
        return {"scheduled": dict(self.scheduled), "total": self.total, "errors": self.errors}


@dataclass
class RevalidationScheduler:
    """
    Periodic driver: fetch candidate ids once, dispatch one job per id.

    Each id appears once per pass, so jobs for the same domain never
    run concurrently within a pass.
    """

    repository: TrackedDomainRepository
    dispatcher: Dispatcher
    stale_unverified_days: int = 30

    def schedule_verification(self, ctx: JobContext) -> PassSummary:
        """Fan out pending auto-verification and verified re-verification."""
        summary = PassSummary()
        pending = self.repository.get_pending_tracked_domain_ids()
        ctx.logger.info("Found %d pending domains to verify", len(pending))
        self._fan_out(ctx, summary, Job.VERIFY_PENDING, pending)

        verified = self.repository.get_verified_tracked_domain_ids()
        ctx.logger.info("Found %d verified domains to re-verify", len(verified))
        self._fan_out(ctx, summary, Job.REVERIFY_OWNERSHIP, verified)
        return summary

    def schedule_domain_expiry(self, ctx: JobContext) -> PassSummary:
        summary = PassSummary()
        targets = self.repository.get_verified_tracked_domains_with_expiry()
        ctx.logger.info("Found %d verified domains with expiry dates", len(targets))
        self._fan_out(ctx, summary, Job.DOMAIN_EXPIRY, [t.tracked_domain_id for t in targets])
        return summary

    def schedule_certificate_expiry(self, ctx: JobContext) -> PassSummary:
        summary = PassSummary()
        targets = self.repository.get_verified_tracked_domains_certificates()
        ctx.logger.info("Found %d verified domains with certificates", len(targets))
        self._fan_out(ctx, summary, Job.CERTIFICATE_EXPIRY, [t.tracked_domain_id for t in targets])
        return summary

    def cleanup_stale_unverified(self, ctx: JobContext) -> int:
        """Delete unverified claims older than stale_unverified_days."""
        cutoff = ctx.started_at - timedelta(days=self.stale_unverified_days)
        deleted = self.repository.delete_stale_unverified_domains(cutoff)
        ctx.logger.info("Deleted %d stale unverified domains (cutoff=%s)", deleted, cutoff.isoformat())
        return deleted

    def _fan_out(self, ctx: JobContext, summary: PassSummary, job: Job, ids: list[str]) -> None:
        scheduled = 0
        for tracked_domain_id in ids:
            try:
                self.dispatcher.dispatch(job, tracked_domain_id)
            except Exception:
                summary.errors += 1
                ctx.logger.error("Failed to dispatch %s for %s", job.value, tracked_domain_id, exc_info=True)
                continue
            scheduled += 1
        summary.scheduled[job.value] = summary.scheduled.get(job.value, 0) + scheduled
        ctx.logger.info("Dispatched %d %s jobs", scheduled, job.value)


@dataclass
class VerificationJobs:
    """
    Single-domain verification units of work.

    Each unit logs through the JobContext it is handed, so its lines
    carry the run id of the task that executed it. Exceptions from
    storage propagate so the runner's retry policy applies; verification
    failures are outcomes, not exceptions.
    """

    repository: TrackedDomainRepository
    verification: VerificationService
    ownership: OwnershipService
    dispatcher: Dispatcher | None = None

    def verify_pending_domain(self, ctx: JobContext, tracked_domain_id: str) -> dict:
        domain = self.repository.find_tracked_domain_with_domain_name(tracked_domain_id)
        if domain is None:
            ctx.logger.warning("Domain %s not found, skipping", tracked_domain_id)
            return {"outcome": "skipped", "reason": "not_found"}
        if domain.verified:
            ctx.logger.info("Domain %s already verified, skipping", tracked_domain_id)
            return {"outcome": "skipped", "reason": "already_verified"}

        result = self.verification.try_all_verification_methods(
            domain.domain_name, domain.verification_token
        )
        if result.verified and result.method is not None:
            self.repository.verify_tracked_domain(tracked_domain_id, result.method)
            ctx.logger.info("Auto-verified pending domain %s via %s", domain.domain_name, result.method.value)
            return {"outcome": "verified", "method": result.method.value}
        return {"outcome": "still_pending"}

    def reverify_ownership(self, ctx: JobContext, tracked_domain_id: str) -> dict:
        domain = self.repository.find_tracked_domain_with_domain_name(tracked_domain_id)
        if domain is None or not domain.verified or domain.verification_method is None:
            ctx.logger.warning("Domain %s not found or missing method, skipping", tracked_domain_id)
            return {"outcome": "skipped", "reason": "invalid_state"}

        result = self.verification.verify_domain_ownership(
            domain.domain_name, domain.verification_token, domain.verification_method
        )
        if result.verified:
            self.ownership.record_success(domain)
            return {
                "outcome": "verified",
                "recovered": domain.verification_status == VerificationStatus.FAILING,
            }

        action = self.ownership.handle_verification_failure(domain)
        ctx.logger.info("Re-verification failed for %s: %s", domain.domain_name, action.value)
        return {"outcome": action.value}

    def auto_verify(self, ctx: JobContext, tracked_domain_id: str, attempt: int = 0) -> dict:
        """
        One step of the post-claim auto-verify schedule.

        Chains the next attempt through the dispatcher until verified,
        deleted or out of attempts; the twice-daily pass covers the rest.
        """
        domain = self.repository.find_tracked_domain_with_domain_name(tracked_domain_id)
        if domain is None:
            ctx.logger.info("Domain %s was deleted, stopping auto-verification", tracked_domain_id)
            return {"outcome": "cancelled", "reason": "domain_deleted"}
        if domain.verified:
            return {"outcome": "cancelled", "reason": "already_verified"}

        result = self.verification.try_all_verification_methods(
            domain.domain_name, domain.verification_token
        )
        if result.verified and result.method is not None:
            self.repository.verify_tracked_domain(tracked_domain_id, result.method)
            ctx.logger.info(
                "Auto-verified %s via %s on attempt %d",
                domain.domain_name,
                result.method.value,
                attempt + 1,
            )
            return {"outcome": "verified", "method": result.method.value, "attempt": attempt + 1}

        next_attempt = attempt + 1
        if next_attempt < len(AUTO_VERIFY_DELAYS) and self.dispatcher is not None:
            self.dispatcher.dispatch(
                Job.AUTO_VERIFY,
                tracked_domain_id,
                attempt=next_attempt,
                countdown=AUTO_VERIFY_DELAYS[next_attempt],
            )
            return {"outcome": "still_pending", "next_attempt": next_attempt}

        ctx.logger.info("Auto-verification schedule exhausted for %s", domain.domain_name)
        return {"outcome": "exhausted"}
