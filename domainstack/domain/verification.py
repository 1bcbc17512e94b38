"""
Verification orchestrator - runs ownership proof executors.

Executors for each method are injected as ports. The orchestrator
never persists anything: it only answers whether the domain presents
evidence of the token right now.

Priority order for "try all" is fixed: DNS TXT, then HTML file, then
meta tag. The first success short-circuits the remaining methods.
"""

import logging
from dataclasses import dataclass

from .ports import VerificationExecutor, VerificationMethod, VerificationResult

logger = logging.getLogger(__name__)

METHOD_PRIORITY = (
    VerificationMethod.DNS_TXT,
    VerificationMethod.HTML_FILE,
    VerificationMethod.META_TAG,
)


@dataclass
class VerificationService:
    """
    Domain service dispatching verification to per-method executors.

    Both entry points always return a VerificationResult; executor
    exceptions never reach the caller.
    """

    dns_txt: VerificationExecutor
    html_file: VerificationExecutor
    meta_tag: VerificationExecutor

    def executor_for(self, method: VerificationMethod) -> VerificationExecutor:
        return {
            VerificationMethod.DNS_TXT: self.dns_txt,
            VerificationMethod.HTML_FILE: self.html_file,
            VerificationMethod.META_TAG: self.meta_tag,
        }[method]

    def verify_domain_ownership(
        self, domain: str, token: str, method: VerificationMethod | str
    ) -> VerificationResult:
        """
        Run exactly the named executor.

        Args:
            domain: Registrable domain name
            token: Verification token of the claim
            method: Method to check

        Returns:
            The executor's result, or a failure carrying the exception
            message if the executor raised
        """
        try:
            method = VerificationMethod(method)
        except ValueError:
            return VerificationResult.failure("Unknown method")

        try:
            return self.executor_for(method).verify(domain, token)
        except Exception as exc:
            logger.warning("%s verification raised for %s: %s", method.value, domain, exc)
            return VerificationResult.failure(str(exc))

    def try_all_verification_methods(self, domain: str, token: str) -> VerificationResult:
        """
        Run DNS TXT, HTML file, then meta tag until one succeeds.

        Each executor is isolated: one raising does not stop the rest.
        """
        for method in METHOD_PRIORITY:
            try:
                result = self.executor_for(method).verify(domain, token)
            except Exception:
                logger.warning(
                    "%s verification threw unexpectedly for %s",
                    method.value,
                    domain,
                    exc_info=True,
                )
                continue
            if result.verified:
                return result

        return VerificationResult.failure()
