"""
Tracking service - the user-facing tracked domain contract.

Covers claiming a domain (with resume for unverified claims), running
an on-demand verification and re-rendering instructions. Ownership and
token rules:

- One claim per (user, domain); a lost insert race resumes the winner
- The token is generated once and reused by every resume
- Verified claims cannot be re-added
"""

import logging
from dataclasses import dataclass

import tldextract

from .exceptions import (
    DomainAlreadyTracked,
    DomainLimitReached,
    InvalidDomain,
    NotDomainOwner,
    TrackedDomainNotFound,
    TrackingError,
)
from .instructions import (
    VerificationInstructions,
    build_verification_instructions,
    generate_verification_token,
)
from .ports import TrackedDomain, TrackedDomainRepository, VerificationMethod, VerificationResult
from .scheduler import AUTO_VERIFY_DELAYS, Dispatcher, Job
from .verification import VerificationService

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_ERROR = "Verification failed. Please check your setup."

# Bundled public suffix snapshot only; never fetched at runtime
_extract = tldextract.TLDExtract(suffix_list_urls=())


def normalize_domain(value: str) -> str:
    """
    Reduce user input (bare host or URL) to its lowercase registrable domain.

    Raises:
        InvalidDomain: If no registrable domain can be derived
    """
    candidate = (value or "").strip().lower().rstrip(".")
    if not candidate:
        raise InvalidDomain("Domain is required")
    parts = _extract(candidate)
    if not parts.domain or not parts.suffix:
        raise InvalidDomain(f"Invalid domain: {value}")
    return f"{parts.domain}.{parts.suffix}"


@dataclass(frozen=True)
class AddDomainResult:
    id: str
    domain: str
    verification_token: str
    instructions: VerificationInstructions
    resumed: bool


@dataclass
class TrackingService:
    """
    Domain service behind the tracking API.

    Attributes:
        repository: Tracked domain persistence
        verification: Verification orchestrator
        dispatcher: Schedules the auto-verify job for new claims (optional)
        max_domains: Per-user limit on active claims
    """

    repository: TrackedDomainRepository
    verification: VerificationService
    dispatcher: Dispatcher | None = None
    max_domains: int = 5

    def add_domain(self, user_id: str, domain: str) -> AddDomainResult:
        """
        Claim a domain for tracking, or resume an unverified claim.

        Args:
            user_id: Caller's user id
            domain: Domain name or URL entered by the user

        Returns:
            AddDomainResult; resumed=True when an existing claim is reused

        Raises:
            InvalidDomain: If the input is not a registrable domain
            DomainAlreadyTracked: If the user's claim is already verified
            DomainLimitReached: If the user is at their limit
        """
        name = normalize_domain(domain)
        domain_id = self.repository.ensure_domain(name)

        existing = self.repository.find_tracked_domain(user_id, domain_id)
        if existing is not None:
            if existing.verified:
                raise DomainAlreadyTracked("You are already tracking this domain")
            return self._result(existing, name, resumed=True)

        current = self.repository.count_active_tracked_domains(user_id)
        if current >= self.max_domains:
            raise DomainLimitReached(self.max_domains)

        tracked = self.repository.create_tracked_domain(
            user_id, domain_id, generate_verification_token()
        )
        if tracked is None:
            # Concurrent request won the unique (user, domain) insert
            winner = self.repository.find_tracked_domain(user_id, domain_id)
            if winner is None:
                raise TrackingError("Failed to create tracked domain")
            return self._result(winner, name, resumed=True)

        logger.info("User %s started tracking %s (%s)", user_id, name, tracked.id)
        if self.dispatcher is not None:
            self.dispatcher.dispatch(
                Job.AUTO_VERIFY, tracked.id, attempt=0, countdown=AUTO_VERIFY_DELAYS[0]
            )
        return self._result(tracked, name, resumed=False)

    def verify_domain(
        self,
        user_id: str,
        tracked_domain_id: str,
        method: VerificationMethod | None = None,
    ) -> VerificationResult:
        """
        Check ownership now, with one named method or all of them.

        A failed check is returned, not raised, with a readable error.

        Raises:
            TrackedDomainNotFound: If the id is unknown
            NotDomainOwner: If the claim belongs to someone else
        """
        tracked = self._get_owned(user_id, tracked_domain_id)
        if tracked.verified:
            return VerificationResult.success(tracked.verification_method)

        if method is not None:
            result = self.verification.verify_domain_ownership(
                tracked.domain_name, tracked.verification_token, method
            )
        else:
            result = self.verification.try_all_verification_methods(
                tracked.domain_name, tracked.verification_token
            )

        if result.verified and result.method is not None:
            self.repository.verify_tracked_domain(tracked.id, result.method)
            logger.info("Verified %s via %s", tracked.domain_name, result.method.value)
            return result

        return VerificationResult.failure(result.error or DEFAULT_VERIFY_ERROR)

    def get_verification_instructions(
        self, user_id: str, tracked_domain_id: str
    ) -> VerificationInstructions:
        """Render the instruction bundle for a claim the caller owns."""
        tracked = self._get_owned(user_id, tracked_domain_id)
        return build_verification_instructions(tracked.domain_name, tracked.verification_token)

    def _get_owned(self, user_id: str, tracked_domain_id: str) -> TrackedDomain:
        tracked = self.repository.find_tracked_domain_with_domain_name(tracked_domain_id)
        if tracked is None:
            raise TrackedDomainNotFound("Tracked domain not found")
        if tracked.user_id != user_id:
            raise NotDomainOwner("You do not have access to this domain")
        return tracked

    def _result(self, tracked: TrackedDomain, name: str, resumed: bool) -> AddDomainResult:
        return AddDomainResult(
            id=tracked.id,
            domain=name,
            verification_token=tracked.verification_token,
            instructions=build_verification_instructions(name, tracked.verification_token),
            resumed=resumed,
        )
