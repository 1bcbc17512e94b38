"""
Verification instructions - tokens and per-method publishing guides.

Instructions are pure functions of (domain, token, method): no I/O and
no stored state, so they can be recomputed identically at any time.
"""

import secrets
from dataclasses import dataclass

from .ports import VerificationMethod

DNS_RECORD_PREFIX = "domainstack-verify="
DNS_LEGACY_HOST_PREFIX = "_domainstack-verify"
HTML_FILE_DIR = "/.well-known/domainstack-verify"
HTML_FILE_LEGACY_PATH = "/.well-known/domainstack-verify.html"
HTML_FILE_CONTENT_PREFIX = "domainstack-verify: "
META_TAG_NAME = "domainstack-verify"

DNS_SUGGESTED_TTL = 3600
DNS_SUGGESTED_TTL_LABEL = "1 hour"


@dataclass(frozen=True)
class DnsInstructions:
    title: str
    description: str
    hostname: str
    record_type: str
    value: str
    suggested_ttl: int
    suggested_ttl_label: str


@dataclass(frozen=True)
class HtmlFileInstructions:
    title: str
    description: str
    hostname: str
    path: str
    full_path: str
    filename: str
    file_content: str


@dataclass(frozen=True)
class MetaTagInstructions:
    title: str
    description: str
    meta_tag: str


@dataclass(frozen=True)
class VerificationInstructions:
    """Instruction bundle covering every method."""

    dns_txt: DnsInstructions
    html_file: HtmlFileInstructions
    meta_tag: MetaTagInstructions


def generate_verification_token() -> str:
    """Return 128 bits of randomness as a 32-character lowercase hex string."""
    return secrets.token_hex(16)


def expected_dns_value(token: str) -> str:
    return f"{DNS_RECORD_PREFIX}{token}"


def expected_file_content(token: str) -> str:
    return f"{HTML_FILE_CONTENT_PREFIX}{token}"


def html_file_path(token: str) -> str:
    return f"{HTML_FILE_DIR}/{token}.html"


def build_dns_instructions(domain: str, token: str) -> DnsInstructions:
    return DnsInstructions(
        title="Add a DNS TXT record",
        description=(
            "Add the following TXT record to your domain's DNS settings. "
            "Changes can take a few minutes to propagate."
        ),
        hostname=domain,
        record_type="TXT",
        value=expected_dns_value(token),
        suggested_ttl=DNS_SUGGESTED_TTL,
        suggested_ttl_label=DNS_SUGGESTED_TTL_LABEL,
    )


def build_html_file_instructions(domain: str, token: str) -> HtmlFileInstructions:
    path = html_file_path(token)
    return HtmlFileInstructions(
        title="Upload an HTML file",
        description=(
            "Create a file at the path below on your web server containing "
            "exactly the content shown."
        ),
        hostname=domain,
        path=path,
        full_path=f"https://{domain}{path}",
        filename=f"{token}.html",
        file_content=expected_file_content(token),
    )


def build_meta_tag_instructions(domain: str, token: str) -> MetaTagInstructions:
    return MetaTagInstructions(
        title="Add a meta tag",
        description=f"Add this tag inside the <head> section of https://{domain}/.",
        meta_tag=f'<meta name="{META_TAG_NAME}" content="{token}">',
    )


def get_verification_instructions(
    domain: str, token: str, method: VerificationMethod
) -> DnsInstructions | HtmlFileInstructions | MetaTagInstructions:
    """Render what the user must publish for a single method."""
    if method == VerificationMethod.DNS_TXT:
        return build_dns_instructions(domain, token)
    if method == VerificationMethod.HTML_FILE:
        return build_html_file_instructions(domain, token)
    return build_meta_tag_instructions(domain, token)


def build_verification_instructions(domain: str, token: str) -> VerificationInstructions:
    return VerificationInstructions(
        dns_txt=build_dns_instructions(domain, token),
        html_file=build_html_file_instructions(domain, token),
        meta_tag=build_meta_tag_instructions(domain, token),
    )
