"""
IP key derivation and client address resolution.

Raw client addresses never appear in store keys. Keys are SHA-256 digests
of the normalized address, keyed with a deployment secret when one is
configured so that every process sharing a store derives the same key.
"""

from __future__ import annotations

import hashlib
import hmac
import ipaddress
from collections.abc import Mapping

# Checked in order; the first public address wins.
FORWARDING_HEADERS = (
    "cf-connecting-ip",
    "client-ip",
    "x-forwarded-for",
    "x-forwarded",
    "forwarded-for",
    "forwarded",
)

UNKNOWN_ADDRESS = "0.0.0.0"


def normalize_ip(ip: str) -> str:
    """
    Canonical textual form of an address.

    IPv6 is compressed and lowercased, IPv4-mapped IPv6 collapses to its
    IPv4 form. Strings that are not addresses are trimmed and lowercased
    so they still produce a stable key.
    """
    value = (ip or "").strip()
    try:
        addr = ipaddress.ip_address(value)
    except ValueError:
        return value.lower()
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return str(addr.ipv4_mapped)
    return str(addr)


class IPKeyCodec:
    """Derives opaque, deterministic keys from client addresses."""

    def __init__(self, secret: str = ""):
        self._secret = secret.encode() if secret else b""

    def key(self, ip: str, bucket: str | None = None) -> str:
        """Return the hex key for ``ip``, optionally scoped to ``bucket``."""
        material = normalize_ip(ip)
        if bucket:
            material = f"{bucket}|{material}"
        data = material.encode()
        if self._secret:
            return hmac.new(self._secret, data, hashlib.sha256).hexdigest()
        return hashlib.sha256(data).hexdigest()


def _is_public(value: str) -> bool:
    try:
        addr = ipaddress.ip_address(value)
    except ValueError:
        return False
    return addr.is_global


def _candidates(header: str, value: str) -> list[str]:
    parts = [part.strip() for part in value.split(",")]
    if header == "forwarded":
        # RFC 7239: for=1.2.3.4;proto=https
        found = []
        for part in parts:
            for pair in part.split(";"):
                name, _, token = pair.strip().partition("=")
                if name.lower() == "for":
                    found.append(token.strip('"[]'))
        return found
    return parts


def resolve_client_ip(headers: Mapping[str, str], remote_addr: str | None) -> str:
    """
    Pick the client address from proxy headers, then the socket peer.

    Only public addresses are accepted from headers; private and reserved
    ranges are skipped.
    """
    for header in FORWARDING_HEADERS:
        value = headers.get(header)
        if not value:
            continue
        for candidate in _candidates(header, value):
            if _is_public(candidate):
                return normalize_ip(candidate)
    if remote_addr:
        return normalize_ip(remote_addr)
    return UNKNOWN_ADDRESS
