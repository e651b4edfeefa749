"""Unit tests for fsenquiry/utils/ulid.py — request id generation.

  - 26 characters, Crockford Base32 charset, uppercase
  - 1,000 generated ids are unique
  - ids generated later sort after earlier ones
"""

from __future__ import annotations

import re
import time

from fsenquiry.utils.ulid import generate_ulid

# Crockford Base32 charset: 0-9 and A-Z, excluding I, L, O, U
ULID_CHARSET = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")


def test_generate_ulid_returns_string() -> None:
    assert isinstance(generate_ulid(), str)


def test_generate_ulid_format() -> None:
    result = generate_ulid()
    assert ULID_CHARSET.match(result), f"ULID {result!r} has an invalid format"


def test_generate_ulid_unique() -> None:
    ids = [generate_ulid() for _ in range(1000)]
    assert len(set(ids)) == 1000
    assert all(ULID_CHARSET.match(value) for value in ids)


def test_generate_ulid_time_ordered() -> None:
    first = generate_ulid()
    time.sleep(0.002)
    second = generate_ulid()
    assert first < second
