"""
Every store key Bastion writes, in one place.

Per-IP keys embed the opaque IP key, never the raw address.
"""

from __future__ import annotations


class Keyspace:
    """Builds prefixed store keys."""

    def __init__(self, prefix: str = "bastion:"):
        self.prefix = prefix

    def counter(self, bucket: str, ip_key: str) -> str:
        return f"{self.prefix}rl:{bucket}:{ip_key}"

    def violations(self, ip_key: str) -> str:
        return f"{self.prefix}violations:{ip_key}"

    def blacklist(self, source: str, ip_key: str) -> str:
        return f"{self.prefix}bl:{source}:{ip_key}"

    def blacklist_index(self, source: str) -> str:
        return f"{self.prefix}bl-index:{source}"

    def attack_state(self) -> str:
        return f"{self.prefix}attack:state"

    def attackers(self) -> str:
        return f"{self.prefix}attack:ips"

    def captcha(self, token: str) -> str:
        return f"{self.prefix}captcha:{token}"
