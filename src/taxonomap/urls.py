# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""URL helpers shared by discovery, tree building and deduplication.

Pure Python module, no browser dependencies.  Every function here fails
open: a malformed URL is returned (or compared) as an opaque string rather
than raising.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

# Query parameters that never change which product a URL points at
DEFAULT_TRACKING_PARAMS: tuple[str, ...] = (
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "gclid",
    "fbclid",
    "ref",
    "_",
    "variant",
)

_NON_NAVIGABLE_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")

SOCIAL_HOSTS: tuple[str, ...] = (
    "facebook.com",
    "twitter.com",
    "x.com",
    "instagram.com",
    "youtube.com",
    "linkedin.com",
    "pinterest.com",
    "tiktok.com",
)

NON_CATEGORY_PATHS: tuple[str, ...] = (
    "/account",
    "/signin",
    "/sign-in",
    "/login",
    "/register",
    "/cart",
    "/bag",
    "/checkout",
    "/wishlist",
    "/help",
    "/customer-service",
    "/privacy",
    "/terms",
    "/contact",
    "/about",
    "/store-locator",
    "/gift-card",
)


def canonicalize_url(url: str) -> str:
    """Strip query string and fragment; lowercase scheme and host.

    Idempotent.  Two URLs differing only in query/fragment canonicalize equal::

        canonicalize_url("https://x.com/p?a=1&b=2#frag") == "https://x.com/p"
    """
    base = url.split("#", 1)[0].split("?", 1)[0]
    sep = base.find("://")
    if sep <= 0:
        return base
    host_start = sep + 3
    host_end = base.find("/", host_start)
    if host_end == -1:
        host_end = len(base)
    return base[:host_end].lower() + base[host_end:]


def resolve_url(url: str | None, base_url: str) -> str | None:
    """Resolve *url* against *base_url* and canonicalize.

    Returns None for empty, fragment-only and non-navigable scheme links.
    """
    if not url:
        return None
    stripped = url.strip()
    if not stripped or stripped.startswith("#"):
        return None
    if stripped.lower().startswith(_NON_NAVIGABLE_SCHEMES):
        return None
    try:
        absolute = urljoin(base_url, stripped)
    except ValueError:
        return canonicalize_url(stripped)
    return canonicalize_url(absolute)


def domain_of(url: str) -> str:
    """Hostname of *url*, or ``"unknown"`` if it has none."""
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return "unknown"
    return host or "unknown"


def _bare_host(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def is_same_site(url: str, base_url: str) -> bool:
    """True when both URLs share a host (ignoring a leading ``www.``)."""
    a, b = domain_of(url), domain_of(base_url)
    if a == "unknown" or b == "unknown":
        return True
    return _bare_host(a) == _bare_host(b)


def is_navigable_url(url: str | None, base_url: str | None = None) -> bool:
    """Whether a category page is worth visiting for child discovery.

    Rejects social/external hosts and account, cart, checkout, help-style paths.
    """
    if not url or url == "#":
        return False
    lowered = url.lower()
    if lowered.startswith(_NON_NAVIGABLE_SCHEMES):
        return False
    host = domain_of(lowered)
    if any(_bare_host(host) == s or host.endswith("." + s) for s in SOCIAL_HOSTS):
        return False
    if base_url and not is_same_site(lowered, base_url):
        return False
    try:
        path = urlsplit(lowered).path
    except ValueError:
        path = lowered
    return not any(path.startswith(p) or f"{p}/" in path for p in NON_CATEGORY_PATHS)


def normalize_product_url(url: str, tracking_params: tuple[str, ...] = DEFAULT_TRACKING_PARAMS) -> str:
    """Drop tracking parameters and the fragment from a product URL.

    Other query parameters are kept (they may select a distinct product).
    Malformed input is returned unchanged.
    """
    if not isinstance(url, str):
        return url
    try:
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            return url
        drop = set(tracking_params)
        kept = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in drop]
        return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, urlencode(kept), ""))
    except ValueError:
        logger.debug("Unparseable product URL kept verbatim: %s", url)
        return url


def url_identity_key(url: str | None) -> str:
    """Loose identity for URL-level collapsing: origin + lowercase path, no trailing slash."""
    if not url:
        return ""
    try:
        parts = urlsplit(url)
    except ValueError:
        return canonicalize_url(url).lower().rstrip("/")
    if not parts.scheme or not parts.netloc:
        return canonicalize_url(url).lower().rstrip("/")
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}{parts.path.lower().rstrip('/')}"
