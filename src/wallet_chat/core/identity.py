"""Helpers for comparing and presenting wallet addresses."""

from __future__ import annotations

import re

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-f]{40}$")


def normalize_identity(address: str) -> str:
    """Return the canonical form used for every identity comparison."""
    return address.strip().lower()


def same_identity(left: str, right: str) -> bool:
    """Return ``True`` when both addresses refer to the same party."""
    return normalize_identity(left) == normalize_identity(right)


def is_valid_identity(address: str) -> bool:
    """Check that ``address`` looks like a ``0x``-prefixed 20 byte hex address."""
    return bool(_ADDRESS_PATTERN.match(normalize_identity(address)))


def short_identity(address: str) -> str:
    """Abbreviate an address as ``0x1234...abcd`` for display."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


__all__ = [
    "is_valid_identity",
    "normalize_identity",
    "same_identity",
    "short_identity",
]
