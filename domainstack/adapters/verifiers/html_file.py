"""HTML file verification under /.well-known/."""

import logging

from domainstack.domain.instructions import HTML_FILE_LEGACY_PATH, expected_file_content, html_file_path
from domainstack.domain.ports import VerificationMethod, VerificationResult

from .safe_fetch import SafeFetcher, SafeFetchError

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 1024
MAX_FILE_REDIRECTS = 3


class HtmlFileVerifier:
    """
    Implements VerificationExecutor for the html_file method.

    Checks the per-token file first (several users may claim the same
    domain), then the shared legacy file; HTTPS before HTTP for both.
    """

    def __init__(self, fetcher: SafeFetcher, timeout: float = 5.0) -> None:
        self._fetcher = fetcher
        self._timeout = timeout

    def verify(self, domain: str, token: str) -> VerificationResult:
        expected = expected_file_content(token)
        per_token = html_file_path(token)
        allowed_hosts = [domain, f"www.{domain}"]

        for url in (f"https://{domain}{per_token}", f"http://{domain}{per_token}"):
            if self._matches(url, expected, domain, allowed_hosts=allowed_hosts):
                return VerificationResult.success(VerificationMethod.HTML_FILE)

        for url in (f"https://{domain}{HTML_FILE_LEGACY_PATH}", f"http://{domain}{HTML_FILE_LEGACY_PATH}"):
            if self._matches(url, expected, domain):
                return VerificationResult.success(VerificationMethod.HTML_FILE)

        return VerificationResult.failure()

    def _matches(self, url: str, expected: str, domain: str, allowed_hosts: list[str] | None = None) -> bool:
        try:
            result = self._fetcher.fetch(
                url,
                allow_http=True,
                allowed_hosts=allowed_hosts or (),
                timeout=self._timeout,
                max_bytes=MAX_FILE_BYTES,
                max_redirects=MAX_FILE_REDIRECTS,
            )
        except SafeFetchError as exc:
            if exc.is_blocked:
                logger.warning("ssrf_blocked html_file domain=%s url=%s code=%s", domain, url, exc.code)
            else:
                logger.debug("HTML file fetch failed for %s: %s", url, exc)
            return False
        return result.text.strip() == expected
