"""Bounded unsigned integer helpers for budgets, counters and payload fields."""

from __future__ import annotations

from .errors import AmountOverflowError


U8_MAX = 2**8 - 1
U64_MAX = 2**64 - 1


def _require_unsigned(value: int, maximum: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > maximum:
        raise ValueError(f"{name} must be between 0 and {maximum}, got {value}")
    return value


def require_u64(value: int, name: str = "value") -> int:
    """Validate a caller-supplied u64."""
    return _require_unsigned(value, U64_MAX, name)


def require_u8(value: int, name: str = "value") -> int:
    """Validate a caller-supplied u8."""
    return _require_unsigned(value, U8_MAX, name)


def checked_add(a: int, b: int, maximum: int = U64_MAX) -> int:
    """Add two unsigned values, aborting instead of wrapping."""
    total = a + b
    if total > maximum:
        raise AmountOverflowError(f"{a} + {b} overflows {maximum}")
    return total


def checked_sub(a: int, b: int) -> int:
    """Subtract two unsigned values, aborting instead of going negative."""
    if b > a:
        raise AmountOverflowError(f"{a} - {b} underflows")
    return a - b
