"""
SSRF-hardened HTTP fetcher for user-controlled URLs.

Every hop, including the first request and each redirect target, is
vetted before a connection is made:

- scheme must be https (http only when allow_http is set)
- localhost and .local/.internal/.localhost names are refused
- an optional allow list further restricts hostnames
- the hostname must not resolve to any non-public address

Redirects are followed manually so the next host is checked too, and
the body is read incrementally so the byte cap is enforced while
streaming.
"""

import ipaddress
import socket
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import httpx

DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_TIMEOUT = 8.0
DEFAULT_MAX_REDIRECTS = 3

BLOCKED_HOSTNAMES = frozenset({"localhost"})
BLOCKED_SUFFIXES = (".local", ".internal", ".localhost")

Resolver = Callable[[str], list[str]]


class SafeFetchError(Exception):
    """A guarded fetch was refused or failed."""

    BLOCKED_CODES = frozenset({"private_ip", "host_blocked", "host_not_allowed", "protocol_not_allowed"})

    def __init__(self, code: str, message: str, status: int | None = None):
        super().__init__(message)
        self.code = code
        self.status = status

    @property
    def is_blocked(self) -> bool:
        """True when the SSRF guard refused the target."""
        return self.code in self.BLOCKED_CODES


@dataclass(frozen=True)
class FetchResult:
    content: bytes
    status_code: int
    final_url: str
    content_type: str | None = None

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


def is_blocked_ip(address: str) -> bool:
    """True for anything that is not a public unicast address."""
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return True
    if ip.version == 6 and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return ip.is_multicast or not ip.is_global


def system_resolver(hostname: str) -> list[str]:
    infos = socket.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP)
    return sorted({info[4][0] for info in infos})


class SafeFetcher:
    """Fetches remote content while refusing internal network targets."""

    def __init__(
        self,
        client: httpx.Client | None = None,
        resolver: Resolver = system_resolver,
        user_agent: str | None = None,
    ) -> None:
        headers = {"User-Agent": user_agent} if user_agent else None
        self._client = client or httpx.Client(headers=headers)
        self._resolver = resolver

    def close(self) -> None:
        self._client.close()

    def fetch(
        self,
        url: str,
        *,
        allow_http: bool = False,
        allowed_hosts: Iterable[str] = (),
        timeout: float = DEFAULT_TIMEOUT,
        max_bytes: int = DEFAULT_MAX_BYTES,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
    ) -> FetchResult:
        """
        GET a URL under the SSRF guard.

        Raises:
            SafeFetchError: On a refused target (is_blocked), a non-2xx
                response, too many redirects, an oversized body or a
                network failure
        """
        try:
            current = httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as exc:
            raise SafeFetchError("invalid_url", f"Invalid URL: {url}") from exc
        allowed = [h.strip().lower() for h in allowed_hosts if h and h.strip()]

        for redirect_count in range(max_redirects + 1):
            self._ensure_allowed(current, allow_http, allowed)
            try:
                with self._client.stream(
                    "GET", current, timeout=timeout, follow_redirects=False
                ) as response:
                    if 300 <= response.status_code < 400:
                        if redirect_count == max_redirects:
                            raise SafeFetchError("redirect_limit", f"Too many redirects fetching {current}")
                        location = response.headers.get("location")
                        if not location:
                            raise SafeFetchError("response_error", "Redirect response missing Location header")
                        current = current.join(location)
                        continue

                    if not response.is_success:
                        raise SafeFetchError(
                            "response_error",
                            f"Remote request failed with {response.status_code}",
                            response.status_code,
                        )

                    declared = response.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > max_bytes:
                        raise SafeFetchError(
                            "size_exceeded", f"Declared size {declared} exceeds limit {max_bytes}"
                        )

                    body = bytearray()
                    for chunk in response.iter_bytes():
                        body.extend(chunk)
                        if len(body) > max_bytes:
                            raise SafeFetchError("size_exceeded", f"Response exceeded {max_bytes} bytes")

                    return FetchResult(
                        content=bytes(body),
                        status_code=response.status_code,
                        final_url=str(current),
                        content_type=response.headers.get("content-type"),
                    )
            except httpx.HTTPError as exc:
                raise SafeFetchError("network_error", str(exc) or type(exc).__name__) from exc

        raise SafeFetchError("redirect_limit", "Exceeded redirect limit")

    def _ensure_allowed(self, url: httpx.URL, allow_http: bool, allowed_hosts: list[str]) -> None:
        scheme = url.scheme.lower()
        if scheme != "https" and not (allow_http and scheme == "http"):
            raise SafeFetchError("protocol_not_allowed", f"Protocol {scheme}: not allowed")

        hostname = (url.host or "").strip().lower()
        if not hostname:
            raise SafeFetchError("invalid_url", "URL missing hostname")

        if hostname in BLOCKED_HOSTNAMES or hostname.endswith(BLOCKED_SUFFIXES):
            raise SafeFetchError("host_blocked", f"Host {hostname} is blocked")

        if allowed_hosts and hostname not in allowed_hosts:
            raise SafeFetchError("host_not_allowed", f"Host {hostname} is not in allow list")

        try:
            ipaddress.ip_address(hostname)
        except ValueError:
            pass
        else:
            if is_blocked_ip(hostname):
                raise SafeFetchError("private_ip", f"IP {hostname} is not reachable")
            return

        try:
            addresses = self._resolver(hostname)
        except OSError as exc:
            raise SafeFetchError("dns_error", str(exc) or "DNS lookup failed") from exc
        if not addresses:
            raise SafeFetchError("dns_error", "DNS lookup returned no records")
        if any(is_blocked_ip(address) for address in addresses):
            raise SafeFetchError("private_ip", f"DNS for {hostname} resolved to private address")
