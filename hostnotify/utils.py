"""Utility helpers for hostnotify."""

from __future__ import annotations

import re
import secrets
import string
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

_phone_separators = re.compile(r"[\s\-().]")
_e164_pattern = re.compile(r"^\+[1-9]\d{6,14}$")
_country_code_pattern = re.compile(r"^\+(\d{1,3})")
_base36_alphabet = string.digits + string.ascii_lowercase


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def epoch_ms() -> int:
    """Current wall-clock time as integer milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_base36_alphabet[remainder])
    return "".join(reversed(digits))


def generate_request_id() -> str:
    """Return an id such as ``req_lx2k9f3a_4k1z0q`` for log correlation."""
    suffix = "".join(secrets.choice(_base36_alphabet) for _ in range(6))
    return f"req_{_base36(epoch_ms())}_{suffix}"


def truncate(value: object, limit: int) -> str:
    """Stringify ``value`` and cut it to ``limit`` characters."""
    return str(value if value is not None else "")[:limit]


def normalize_phone(raw: str | None) -> str:
    """Strip separators and turn an international ``00`` prefix into ``+``."""
    stripped = _phone_separators.sub("", (raw or "").strip())
    if stripped.startswith("00"):
        return f"+{stripped[2:]}"
    return stripped


def is_valid_e164(phone: str | None) -> bool:
    """Return True for ``+`` followed by 7-15 digits, the first one non-zero."""
    if not phone or not isinstance(phone, str):
        return False
    return bool(_e164_pattern.match(normalize_phone(phone)))


def mask_phone(phone: str | None) -> str:
    """Keep only the country code, e.g. ``+32***``."""
    if not phone or len(phone) < 4:
        return "***"
    match = _country_code_pattern.match(phone)
    return f"+{match.group(1)}***" if match else "+***"


class KeyedLock:
    """Hand out one lock per key; locks are dropped when nobody holds them."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
