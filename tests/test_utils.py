from __future__ import annotations

import re
import threading

import pytest

from hostnotify.utils import (
    KeyedLock,
    generate_request_id,
    is_valid_e164,
    mask_phone,
    normalize_phone,
    truncate,
)


@pytest.mark.parametrize("phone", ["+14165551234", "+32475123456", "+1 (416) 555-1234"])
def test_valid_e164_numbers(phone):
    assert is_valid_e164(phone)


@pytest.mark.parametrize(
    "phone", ["14165551234", "+0123456789", "", None, "+123456", "+1234567890123456"]
)
def test_invalid_e164_numbers(phone):
    assert not is_valid_e164(phone)


def test_normalize_phone_strips_separators_and_double_zero_prefix():
    assert normalize_phone(" 0032 475.12-34 56 ") == "+32475123456"
    assert normalize_phone("+1 (416) 555-1234") == "+14165551234"
    assert is_valid_e164("0032475123456")


def test_mask_phone_keeps_only_country_code():
    assert mask_phone("+32475123456") == "+324***"
    assert mask_phone("+1") == "***"
    assert mask_phone("4165551234") == "+***"


def test_truncate_handles_none_and_long_values():
    assert truncate(None, 10) == ""
    assert truncate("x" * 200, 50) == "x" * 50


def test_generate_request_id_shape():
    assert re.match(r"^req_[0-9a-z]+_[0-9a-z]{6}$", generate_request_id())


def test_keyed_lock_serialises_same_key_and_cleans_up():
    locks = KeyedLock()
    order: list[str] = []
    entered = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold("r1"):
            entered.set()
            release.wait(timeout=2)
            order.append("first")

    def waiter():
        with locks.hold("r1"):
            order.append("second")

    first = threading.Thread(target=holder)
    first.start()
    entered.wait(timeout=2)
    second = threading.Thread(target=waiter)
    second.start()
    release.set()
    first.join(timeout=2)
    second.join(timeout=2)

    assert order == ["first", "second"]
    assert len(locks) == 0
