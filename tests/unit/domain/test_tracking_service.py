"""Unit tests for the tracking contract (claim, verify, instructions)."""

import pytest

from domainstack.domain.exceptions import (
    DomainAlreadyTracked,
    DomainLimitReached,
    InvalidDomain,
    NotDomainOwner,
    TrackedDomainNotFound,
)
from domainstack.domain.ports import VerificationMethod, VerificationResult
from domainstack.domain.scheduler import AUTO_VERIFY_DELAYS, Job
from domainstack.domain.tracking import DEFAULT_VERIFY_ERROR, TrackingService, normalize_domain


@pytest.fixture
def tracking(repository, verification, dispatcher) -> TrackingService:
    repository.add_user("user-1")
    repository.add_user("user-2", email="other@example.com")
    return TrackingService(
        repository=repository, verification=verification, dispatcher=dispatcher, max_domains=2
    )


class TestNormalizeDomain:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("Example.COM", "example.com"),
            ("https://www.example.com/path?q=1", "example.com"),
            ("blog.example.co.uk", "example.co.uk"),
            ("  example.org.  ", "example.org"),
        ],
    )
    def test_reduces_to_registrable_domain(self, value: str, expected: str) -> None:
        assert normalize_domain(value) == expected

    @pytest.mark.parametrize("value", ["", "   ", "localhost", "com"])
    def test_rejects_non_registrable(self, value: str) -> None:
        with pytest.raises(InvalidDomain):
            normalize_domain(value)


class TestAddDomain:
    def test_new_claim_schedules_auto_verify(self, tracking, dispatcher) -> None:
        result = tracking.add_domain("user-1", "example.com")

        assert result.resumed is False
        assert result.domain == "example.com"
        assert len(result.verification_token) == 32
        assert result.instructions.dns_txt.value == f"domainstack-verify={result.verification_token}"
        assert dispatcher.dispatched == [(Job.AUTO_VERIFY, result.id, 0, AUTO_VERIFY_DELAYS[0])]

    def test_readd_unverified_resumes_with_same_token(self, tracking, dispatcher) -> None:
        first = tracking.add_domain("user-1", "example.com")
        second = tracking.add_domain("user-1", "https://EXAMPLE.com/")

        assert second.resumed is True
        assert second.id == first.id
        assert second.verification_token == first.verification_token
        assert len(dispatcher.dispatched) == 1

    def test_readd_verified_conflicts(self, tracking, repository) -> None:
        first = tracking.add_domain("user-1", "example.com")
        repository.verify_tracked_domain(first.id, VerificationMethod.DNS_TXT)

        with pytest.raises(DomainAlreadyTracked):
            tracking.add_domain("user-1", "example.com")

    def test_two_users_get_independent_tokens(self, tracking) -> None:
        mine = tracking.add_domain("user-1", "example.com")
        theirs = tracking.add_domain("user-2", "example.com")
        assert mine.verification_token != theirs.verification_token

    def test_limit_reached(self, tracking) -> None:
        tracking.add_domain("user-1", "a.com")
        tracking.add_domain("user-1", "b.com")

        with pytest.raises(DomainLimitReached):
            tracking.add_domain("user-1", "c.com")

    def test_lost_insert_race_resumes_winner(self, tracking, repository) -> None:
        winner = repository.create_tracked_domain("user-1", repository.ensure_domain("example.com"), "f" * 32)
        original_find = repository.find_tracked_domain
        calls = []

        def find_after_race(user_id, domain_id):
            calls.append(domain_id)
            # First lookup misses: the competing insert lands after it
            return None if len(calls) == 1 else original_find(user_id, domain_id)

        repository.find_tracked_domain = find_after_race

        result = tracking.add_domain("user-1", "example.com")

        assert result.resumed is True
        assert result.id == winner.id
        assert result.verification_token == "f" * 32


class TestVerifyDomain:
    def test_success_persists(self, tracking, repository, executors) -> None:
        claim = tracking.add_domain("user-1", "example.com")
        executors["meta_tag"].result = VerificationResult.success(VerificationMethod.META_TAG)

        result = tracking.verify_domain("user-1", claim.id)

        assert result.verified is True
        stored = repository.find_tracked_domain_by_id(claim.id)
        assert stored.verified is True
        assert stored.verification_method == VerificationMethod.META_TAG

    def test_failure_returns_default_error(self, tracking) -> None:
        claim = tracking.add_domain("user-1", "example.com")

        result = tracking.verify_domain("user-1", claim.id, VerificationMethod.DNS_TXT)

        assert result.verified is False
        assert result.error == DEFAULT_VERIFY_ERROR

    def test_already_verified_short_circuits(self, tracking, repository, executors) -> None:
        claim = tracking.add_domain("user-1", "example.com")
        repository.verify_tracked_domain(claim.id, VerificationMethod.HTML_FILE)

        result = tracking.verify_domain("user-1", claim.id)

        assert result == VerificationResult.success(VerificationMethod.HTML_FILE)
        assert executors["dns_txt"].calls == []

    def test_other_users_claim_is_forbidden(self, tracking) -> None:
        claim = tracking.add_domain("user-1", "example.com")
        with pytest.raises(NotDomainOwner):
            tracking.verify_domain("user-2", claim.id)

    def test_unknown_claim(self, tracking) -> None:
        with pytest.raises(TrackedDomainNotFound):
            tracking.get_verification_instructions("user-1", "missing")
