"""Verification adapters - DNS TXT, HTML file and meta tag executors."""

from .dns import DnsTxtVerifier
from .html_file import HtmlFileVerifier
from .meta_tag import MetaTagVerifier
from .safe_fetch import SafeFetcher, SafeFetchError

__all__ = ["DnsTxtVerifier", "HtmlFileVerifier", "MetaTagVerifier", "SafeFetchError", "SafeFetcher"]
