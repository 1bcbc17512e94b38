"""
Unit tests for DnsTxtVerifier.

DoH providers are faked with httpx.MockTransport.
"""

from types import SimpleNamespace

import httpx

from domainstack.adapters.verifiers import dns
from domainstack.adapters.verifiers.dns import (
    DOH_PROVIDERS,
    DnsTxtVerifier,
    provider_order_for_lookup,
    strip_txt_quotes,
)
from domainstack.domain.ports import VerificationMethod

TOKEN = "0123456789abcdef0123456789abcdef"
EXPECTED = f"domainstack-verify={TOKEN}"


def doh_answer(name: str, *records: tuple[int, str]) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "Status": 0,
            "Answer": [{"name": name, "type": rr_type, "TTL": 300, "data": data} for rr_type, data in records],
        },
    )


def make_verifier(handler) -> DnsTxtVerifier:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return DnsTxtVerifier(client=client, backoff=0)


class TestProviderOrder:
    def test_order_is_stable_per_domain(self) -> None:
        assert provider_order_for_lookup("Example.com") == provider_order_for_lookup("example.com")

    def test_order_contains_every_provider(self) -> None:
        assert sorted(p.key for p in provider_order_for_lookup("example.com")) == sorted(
            p.key for p in DOH_PROVIDERS
        )


def test_strip_txt_quotes() -> None:
    assert strip_txt_quotes(f'"{EXPECTED}"') == EXPECTED
    assert strip_txt_quotes(EXPECTED) == EXPECTED


class TestDnsTxtVerifier:
    def test_exact_quoted_record_verifies(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return doh_answer("example.com", (16, f'"{EXPECTED}"'))

        result = make_verifier(handler).verify("example.com", TOKEN)

        assert result.verified is True
        assert result.method == VerificationMethod.DNS_TXT
        request = seen[0]
        assert request.url.params["name"] == "example.com"
        assert request.url.params["type"] == "TXT"
        assert "t" in request.url.params
        assert request.headers["accept"] == "application/dns-json"

    def test_substring_match_is_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return doh_answer(request.url.params["name"], (16, f"{EXPECTED}-extra"), (16, f"x{EXPECTED}"))

        assert make_verifier(handler).verify("example.com", TOKEN).verified is False

    def test_non_txt_records_are_ignored(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return doh_answer(request.url.params["name"], (5, EXPECTED))

        assert make_verifier(handler).verify("example.com", TOKEN).verified is False

    def test_legacy_host_is_checked(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            name = request.url.params["name"]
            if name == "_domainstack-verify.example.com":
                return doh_answer(name, (16, EXPECTED))
            return doh_answer(name)

        assert make_verifier(handler).verify("example.com", TOKEN).verified is True

    def test_failing_provider_falls_through_to_next(self) -> None:
        first = provider_order_for_lookup("example.com")[0]
        hosts = []

        def handler(request: httpx.Request) -> httpx.Response:
            hosts.append(request.url.host)
            if str(request.url).startswith(first.url):
                raise httpx.ConnectError("unreachable")
            return doh_answer("example.com", (16, EXPECTED))

        result = make_verifier(handler).verify("example.com", TOKEN)

        assert result.verified is True
        # One retry on the failing provider before moving on
        assert hosts.count(httpx.URL(first.url).host) == 2

    def test_non_2xx_skips_provider(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        assert make_verifier(handler).verify("example.com", TOKEN).verified is False

    def test_malformed_json_skips_provider(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"not json")

        assert make_verifier(handler).verify("example.com", TOKEN).verified is False

    def test_unexpected_body_shape_skips_only_that_provider(self) -> None:
        first = provider_order_for_lookup("example.com")[0]

        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url).startswith(first.url):
                return httpx.Response(200, json=["unexpected"])
            return doh_answer("example.com", (16, EXPECTED))

        assert make_verifier(handler).verify("example.com", TOKEN).verified is True

    def test_non_object_answers_are_ignored(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"Status": 0, "Answer": ["junk", None, {"type": 16, "data": EXPECTED}]})

        assert make_verifier(handler).verify("example.com", TOKEN).verified is True

    def test_non_list_answer_skips_provider(self) -> None:
        first = provider_order_for_lookup("example.com")[0]

        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url).startswith(first.url):
                return httpx.Response(200, json={"Status": 0, "Answer": "garbage"})
            return doh_answer("example.com", (16, EXPECTED))

        assert make_verifier(handler).verify("example.com", TOKEN).verified is True

    def test_retry_sends_a_fresh_cache_buster(self, monkeypatch) -> None:
        clock = iter([1000.0, 1000.5, 1001.0, 1001.5])
        monkeypatch.setattr(dns, "time", SimpleNamespace(time=lambda: next(clock)))
        busters = []

        def handler(request: httpx.Request) -> httpx.Response:
            busters.append(request.url.params["t"])
            if len(busters) == 1:
                raise httpx.ConnectError("reset")
            return doh_answer("example.com", (16, EXPECTED))

        assert make_verifier(handler).verify("example.com", TOKEN).verified is True
        assert busters == ["1000000", "1000500"]
