"""
Server identity extraction and normalization.

A server identity is the canonical host of a federated server: the authority
component of its actor URL, lowercased and IDNA-encoded when it contains
international characters. Extraction is total; malformed input yields None.
"""

import re
from typing import Optional
from urllib.parse import urlsplit

import idna

# Characters that can never appear in an authority component
FORBIDDEN_CHARS_PATTERN = re.compile(r'[\x00-\x20\x7f"<>\\^`{|}]')


def normalize_host(host: object) -> Optional[str]:
    """
    Convert a host to canonical form (lowercase, IDNA-encoded).

    Every join key passes through here: actor URL authorities, federation
    list entries, uptime domains and the hosts inside storage keys.

    Args:
        host: Host or authority string to normalize

    Returns:
        Canonical host, or None for non-strings and hosts that cannot be encoded
    """
    if not isinstance(host, str):
        return None

    host_lower = host.strip().lower()
    if not host_lower:
        return None

    if any(ord(c) > 127 for c in host_lower):
        hostname, sep, port = host_lower.partition(":")
        try:
            encoded = idna.encode(hostname, uts46=True).decode("ascii")
        except idna.IDNAError:
            return None
        return f"{encoded}{sep}{port}"

    return host_lower


def extract_identity(actor_url: object) -> Optional[str]:
    """
    Extract the server identity from an actor URL.

    ``https://lemmy.world/c/technology`` yields ``lemmy.world``. Ports are
    kept as part of the authority; user info is discarded.

    Args:
        actor_url: Actor URL as stored by the crawler (any type)

    Returns:
        Canonical host, or None for non-string, empty or malformed URLs
    """
    if not isinstance(actor_url, str) or not actor_url:
        return None

    if FORBIDDEN_CHARS_PATTERN.search(actor_url.strip()):
        return None

    try:
        parts = urlsplit(actor_url.strip())
    except ValueError:
        return None

    if not parts.scheme or not parts.netloc:
        return None

    authority = parts.netloc.rpartition("@")[2]
    return normalize_host(authority)
