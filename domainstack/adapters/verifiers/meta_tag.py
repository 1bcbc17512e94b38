"""Meta tag verification on the domain homepage."""

import logging

from bs4 import BeautifulSoup

from domainstack.domain.instructions import META_TAG_NAME
from domainstack.domain.ports import VerificationMethod, VerificationResult

from .safe_fetch import SafeFetcher, SafeFetchError

logger = logging.getLogger(__name__)

MAX_HTML_BYTES = 512 * 1024
MAX_HOMEPAGE_REDIRECTS = 5


def find_verification_tokens(html: str) -> list[str]:
    """Return the trimmed content of every domainstack-verify meta tag."""
    soup = BeautifulSoup(html, "html.parser")
    tokens = []
    for tag in soup.find_all("meta"):
        name = (tag.get("name") or "").strip().lower()
        if name == META_TAG_NAME:
            tokens.append((tag.get("content") or "").strip())
    return tokens


class MetaTagVerifier:
    """
    Implements VerificationExecutor for the meta_tag method.

    The homepage may carry one tag per claimant; any exact match on
    this caller's token verifies.
    """

    def __init__(self, fetcher: SafeFetcher, timeout: float = 10.0) -> None:
        self._fetcher = fetcher
        self._timeout = timeout

    def verify(self, domain: str, token: str) -> VerificationResult:
        for url in (f"https://{domain}/", f"http://{domain}/"):
            try:
                result = self._fetcher.fetch(
                    url,
                    allow_http=True,
                    timeout=self._timeout,
                    max_bytes=MAX_HTML_BYTES,
                    max_redirects=MAX_HOMEPAGE_REDIRECTS,
                )
            except SafeFetchError as exc:
                if exc.is_blocked:
                    logger.warning("ssrf_blocked meta_tag domain=%s url=%s code=%s", domain, url, exc.code)
                else:
                    logger.debug("Homepage fetch failed for %s: %s", url, exc)
                continue

            if token in find_verification_tokens(result.text):
                return VerificationResult.success(VerificationMethod.META_TAG)

        return VerificationResult.failure()
