"""Input validation helpers."""

from __future__ import annotations

import re

# 160-bit address hash rendered as RFC 4648 base32 without padding.
ADDRESS_RE = re.compile(r"^[A-Z2-7]{32}$")
UNIT_RE = re.compile(r"^[A-Za-z0-9+/=_-]{1,64}$")


def require_fields(data: dict, *fields: str) -> None:
    for field in fields:
        if field not in data or data[field] in (None, ""):
            raise ValueError(f"Missing required field: {field}")


def is_valid_address(value) -> bool:
    return isinstance(value, str) and bool(ADDRESS_RE.match(value))


def is_valid_unit(value) -> bool:
    return isinstance(value, str) and bool(UNIT_RE.match(value))


def is_valid_provider(value) -> bool:
    return isinstance(value, str) and 0 < len(value.strip()) <= 64
