"""
DNS TXT verification over DNS-over-HTTPS.

Queries each DoH provider for TXT records on the bare domain and on the
legacy _domainstack-verify host. Providers are rotated by a stable hash
of the domain so a given domain always hits the same resolver first.
A provider error only skips that provider.
"""

import logging
import time
import zlib
from dataclasses import dataclass

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from domainstack.domain.instructions import DNS_LEGACY_HOST_PREFIX, expected_dns_value
from domainstack.domain.ports import VerificationMethod, VerificationResult

logger = logging.getLogger(__name__)

DNS_TYPE_TXT = 16
DOH_HEADERS = {"Accept": "application/dns-json"}


@dataclass(frozen=True)
class DohProvider:
    key: str
    url: str


DOH_PROVIDERS = (
    DohProvider("cloudflare", "https://cloudflare-dns.com/dns-query"),
    DohProvider("google", "https://dns.google/resolve"),
)


def provider_order_for_lookup(domain: str, providers: tuple[DohProvider, ...] = DOH_PROVIDERS) -> list[DohProvider]:
    """Rotate providers by a stable hash of the lowercased domain."""
    start = zlib.crc32(domain.lower().encode()) % len(providers)
    return list(providers[start:]) + list(providers[:start])


def strip_txt_quotes(data: str) -> str:
    value = data
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value.strip()


class DnsTxtVerifier:
    """Implements VerificationExecutor for the dns_txt method."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        providers: tuple[DohProvider, ...] = DOH_PROVIDERS,
        timeout: float = 5.0,
        retries: int = 1,
        backoff: float = 0.2,
    ) -> None:
        self._client = client or httpx.Client()
        self._providers = providers
        self._timeout = timeout
        self._retries = retries
        self._backoff = backoff

    def verify(self, domain: str, token: str) -> VerificationResult:
        expected = expected_dns_value(token)
        hosts = [domain, f"{DNS_LEGACY_HOST_PREFIX}.{domain}"]
        providers = provider_order_for_lookup(domain, self._providers)

        for hostname in hosts:
            for provider in providers:
                try:
                    answers = self._query_txt(provider, hostname)
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning(
                        "DoH provider %s failed for %s: %s", provider.key, hostname, exc
                    )
                    continue
                if answers is None:
                    continue
                for answer in answers:
                    if answer.get("type") != DNS_TYPE_TXT:
                        continue
                    if strip_txt_quotes(str(answer.get("data", ""))) == expected:
                        return VerificationResult.success(VerificationMethod.DNS_TXT)

        logger.debug("No matching TXT record for %s", domain)
        return VerificationResult.failure()

    def _query_txt(self, provider: DohProvider, hostname: str) -> list[dict] | None:
        """
        Return the Answer objects, or None for a non-2xx response.

        Raises:
            ValueError: If the body is not a DoH JSON object
        """
        for attempt in Retrying(
            stop=stop_after_attempt(self._retries + 1),
            wait=wait_fixed(self._backoff),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                params = {
                    "name": hostname,
                    "type": "TXT",
                    # Cache buster, fresh per attempt
                    "t": str(int(time.time() * 1000)),
                }
                response = self._client.get(
                    provider.url, params=params, headers=DOH_HEADERS, timeout=self._timeout
                )
        if not response.is_success:
            logger.debug("DoH provider %s returned %s for %s", provider.key, response.status_code, hostname)
            return None
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError(f"expected a JSON object, got {type(body).__name__}")
        answers = body.get("Answer") or []
        if not isinstance(answers, list):
            raise ValueError(f"expected an Answer list, got {type(answers).__name__}")
        return [answer for answer in answers if isinstance(answer, dict)]
