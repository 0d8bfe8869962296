"""URL helpers."""

from __future__ import annotations

from urllib.parse import urlparse

_CLOUD_SUFFIXES = (".atlassian.net", ".jira.com", ".jira-dev.com")


def is_http_url(url: str) -> bool:
    """True if *url* has an http(s) scheme and a host."""
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def is_atlassian_cloud_url(url: str) -> bool:
    """Return True for Atlassian Cloud hosts, False for self-hosted ones.

    Localhost and bare IP addresses are never Cloud.
    """
    if not url:
        return False
    hostname = (urlparse(url).hostname or "").lower()
    if not hostname or hostname == "localhost":
        return False
    return hostname.endswith(_CLOUD_SUFFIXES)
