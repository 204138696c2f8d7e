"""Hostname → tenant subdomain extraction."""

from __future__ import annotations

import re
from collections.abc import Iterable

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1"})
IPV4_PATTERN = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")


def extract_subdomain(
    host: str | None,
    base_domain: str,
    platform_domains: Iterable[str] = (),
) -> str | None:
    """Return the lowercased tenant subdomain carried by ``host``, if any.

    None means "no subdomain": a bare or ``www`` base-domain host,
    localhost, a raw IP address, or a platform hosting domain whose first
    label is an application name rather than a tenant.
    """
    if not host:
        return None
    host = host.strip().lower()
    if host.startswith("["):
        return None  # bracketed IPv6, with or without port
    host = host.split(":", 1)[0].rstrip(".")

    if not host or host in LOCAL_HOSTS or IPV4_PATTERN.match(host):
        return None

    base_domain = base_domain.lower()
    if host == base_domain:
        return None
    if host.endswith(f".{base_domain}"):
        subdomain = host[: -(len(base_domain) + 1)]
        if not subdomain or subdomain == "www":
            return None
        return subdomain

    for platform_domain in platform_domains:
        if host == platform_domain or host.endswith(f".{platform_domain}"):
            return None

    # Custom domain: the first label counts only when there are 3+ labels
    labels = host.split(".")
    if len(labels) >= 3 and labels[0] != "www":
        return labels[0]
    return None
