"""Overflow-checked integer arithmetic for 18-decimal fixed-point values.

Amounts are plain ints in an asset's native decimals; prices and USD values are
ints scaled by ``ONE``. Every multiplication goes through ``safe_mul`` before
the caller divides, so a product that would not fit in 256 bits fails loudly
instead of being truncated.
"""
from __future__ import annotations

from decimal import Decimal

from .errors import Overflow

ONE = 10 ** 18
UINT256_MAX = (1 << 256) - 1


def safe_mul(x: int, y: int) -> int:
    if x < 0 or y < 0 or x > UINT256_MAX or y > UINT256_MAX:
        raise Overflow(f"operand out of uint256 range: {x} * {y}")
    r = x * y
    # high word of the 512-bit product must be empty
    if r >> 256:
        raise Overflow(f"product exceeds 256 bits: {x} * {y}")
    return r


def mul_div(x: int, y: int, d: int) -> int:
    if d == 0:
        raise ZeroDivisionError("mul_div by zero")
    return safe_mul(x, y) // d


def mul_div_up(x: int, y: int, d: int) -> int:
    if d == 0:
        raise ZeroDivisionError("mul_div_up by zero")
    return div_up(safe_mul(x, y), d)


def div_up(x: int, d: int) -> int:
    return -(-x // d)


def scale(decimals: int) -> int:
    return 10 ** decimals


def to_usd(amount: int, price: int, decimals: int) -> int:
    """USD value (18 dec) of ``amount`` native units at ``price`` per whole token."""
    return mul_div(amount, price, scale(decimals))


def from_usd(value: int, price: int, decimals: int) -> int:
    """Native units bought by ``value`` USD at ``price`` per whole token (floor)."""
    return mul_div(value, scale(decimals), price)


def from_usd_up(value: int, price: int, decimals: int) -> int:
    return mul_div_up(value, scale(decimals), price)


def from_float(x: float, decimals: int = 18) -> int:
    """Fixed-point integer for a human-readable amount (via Decimal, not float math)."""
    return int(Decimal(str(x)) * scale(decimals))


def to_float(x: int, decimals: int = 18) -> float:
    return float(Decimal(x) / scale(decimals))
