"""Account address normalization."""

from __future__ import annotations

import re


ADDRESS_LENGTH = 32

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{1,64}$")


def normalize_address(value: str) -> str:
    """Return ``0x`` + 64 lowercase hex chars, left-padding short forms like ``0x1``."""
    candidate = str(value).strip()
    if not candidate.startswith("0x"):
        candidate = "0x" + candidate
    if not _ADDRESS_RE.match(candidate):
        raise ValueError(f"Invalid address: {value}")
    return "0x" + candidate[2:].lower().rjust(ADDRESS_LENGTH * 2, "0")


def address_bytes(value: str) -> bytes:
    """Fixed-width 32-byte encoding of an address."""
    return bytes.fromhex(normalize_address(value)[2:])


def address_from_bytes(raw: bytes) -> str:
    if len(raw) != ADDRESS_LENGTH:
        raise ValueError(f"Address must be {ADDRESS_LENGTH} bytes, got {len(raw)}")
    return "0x" + raw.hex()
