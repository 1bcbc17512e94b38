"""Unit tests for the verification orchestrator."""

from domainstack.domain.ports import VerificationMethod, VerificationResult
from domainstack.domain.verification import VerificationService
from tests.fakes import StubExecutor

TOKEN = "a" * 32


class TestTryAllVerificationMethods:
    def test_first_success_short_circuits(self, executors, verification) -> None:
        executors["dns_txt"].result = VerificationResult.success(VerificationMethod.DNS_TXT)
        executors["html_file"].result = VerificationResult.success(VerificationMethod.HTML_FILE)

        result = verification.try_all_verification_methods("example.com", TOKEN)

        assert result == VerificationResult.success(VerificationMethod.DNS_TXT)
        assert executors["html_file"].calls == []
        assert executors["meta_tag"].calls == []

    def test_priority_order_dns_html_meta(self, executors, verification) -> None:
        order = []
        for name, executor in executors.items():
            executor.verify = lambda domain, token, name=name: (
                order.append(name) or VerificationResult.failure()
            )

        verification.try_all_verification_methods("example.com", TOKEN)

        assert order == ["dns_txt", "html_file", "meta_tag"]

    def test_raising_executor_does_not_stop_the_rest(self, executors, verification) -> None:
        executors["dns_txt"].exc = RuntimeError("resolver exploded")
        executors["meta_tag"].result = VerificationResult.success(VerificationMethod.META_TAG)

        result = verification.try_all_verification_methods("example.com", TOKEN)

        assert result.verified is True
        assert result.method == VerificationMethod.META_TAG
        assert len(executors["html_file"].calls) == 1

    def test_all_failures_return_failure(self, verification) -> None:
        result = verification.try_all_verification_methods("example.com", TOKEN)
        assert result.verified is False
        assert result.method is None


class TestVerifyDomainOwnership:
    def test_runs_only_named_executor(self, executors, verification) -> None:
        executors["html_file"].result = VerificationResult.success(VerificationMethod.HTML_FILE)

        result = verification.verify_domain_ownership("example.com", TOKEN, "html_file")

        assert result.verified is True
        assert executors["dns_txt"].calls == []
        assert executors["meta_tag"].calls == []

    def test_unknown_method(self, verification) -> None:
        result = verification.verify_domain_ownership("example.com", TOKEN, "carrier_pigeon")
        assert result == VerificationResult.failure("Unknown method")

    def test_exception_becomes_failure_with_message(self) -> None:
        service = VerificationService(
            dns_txt=StubExecutor(exc=TimeoutError("DoH timed out")),
            html_file=StubExecutor(),
            meta_tag=StubExecutor(),
        )

        result = service.verify_domain_ownership("example.com", TOKEN, VerificationMethod.DNS_TXT)

        assert result.verified is False
        assert result.error == "DoH timed out"
