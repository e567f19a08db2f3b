"""
Arithmetic CAPTCHA challenges.

Challenges are single use: verification deletes the stored answer before
comparing, so a token can never be tried twice.
"""

from __future__ import annotations

import re
import secrets
import string
from typing import Any

from bastion.config import Settings
from bastion.core.errors import StoreUnavailableError
from bastion.core.logging import get_logger
from bastion.core.time import Clock, system_clock
from bastion.security.keyspace import Keyspace
from bastion.security.types import CaptchaChallenge
from bastion.store.base import TTLStore, dump_record, load_record

logger = get_logger(__name__)

TOKEN_LENGTH = 32
TOKEN_ALPHABET = string.ascii_letters + string.digits
_TOKEN_RE = re.compile(r"^[A-Za-z0-9]{1,128}$")

DIFFICULTIES = ("easy", "medium", "hard")


def make_question(difficulty: str, rng: secrets.SystemRandom | None = None) -> tuple[str, int]:
    """Return ``(question, answer)`` for the given difficulty."""
    rng = rng or secrets.SystemRandom()
    if difficulty == "easy":
        a, b, op = rng.randint(1, 10), rng.randint(1, 10), "+"
    elif difficulty == "hard":
        a, b = rng.randint(10, 50), rng.randint(2, 12)
        op = rng.choice("*+")
    else:
        a, b = rng.randint(5, 20), rng.randint(1, 15)
        op = rng.choice("+-")
    if op == "+":
        answer = a + b
    elif op == "-":
        answer = a - b
    else:
        answer = a * b
    return f"What is {a} {op} {b}?", answer


def _parse_answer(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and re.fullmatch(r"\s*-?\d{1,9}\s*", value):
        return int(value)
    return None


class CaptchaService:
    """Issues and verifies arithmetic challenges."""

    def __init__(
        self,
        store: TTLStore,
        keyspace: Keyspace,
        settings: Settings,
        clock: Clock = system_clock,
    ):
        self.store = store
        self.keyspace = keyspace
        self.settings = settings
        self.clock = clock
        self._rng = secrets.SystemRandom()

    def generate(self, difficulty: str | None = None) -> CaptchaChallenge:
        """Create and store a challenge. Raises StoreUnavailableError if it cannot be stored."""
        level = difficulty if difficulty in DIFFICULTIES else self.settings.captcha_difficulty
        question, answer = make_question(level, self._rng)
        token = "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))
        ttl = self.settings.captcha_ttl_seconds
        now = self.clock()
        self.store.set(
            self.keyspace.captcha(token),
            dump_record({"answer": answer, "created_at": now}),
            ttl,
        )
        return CaptchaChallenge(token=token, question=question, answer=answer, created_at=now, ttl=ttl)

    def verify(self, token: Any, answer: Any) -> bool:
        """
        True only for a stored, unexpired challenge answered exactly.

        The challenge is consumed whatever the outcome. Malformed input and
        store outages count as failure.
        """
        if not isinstance(token, str) or not _TOKEN_RE.match(token):
            return False
        key = self.keyspace.captcha(token)
        try:
            raw = self.store.get(key)
            self.store.delete(key)
        except StoreUnavailableError:
            logger.warning("CAPTCHA store unavailable; failing verification")
            return False
        record = load_record(key, raw)
        if record is None:
            return False
        if record.get("created_at", 0) + self.settings.captcha_ttl_seconds <= self.clock():
            return False
        submitted = _parse_answer(answer)
        return submitted is not None and submitted == record.get("answer")
