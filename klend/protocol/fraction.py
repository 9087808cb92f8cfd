"""Scaled-fraction (Sf) conversion.

On-chain amounts that need sub-unit precision are stored as unsigned integers
scaled by 2**60. Cumulative borrow rates use a wider "big fraction" made of four
little-endian u64 limbs with the same scale.

All money math runs on :class:`decimal.Decimal` in a 40-digit, truncating
context so that decoded and projected figures agree digit for digit with the
protocol's reference client. Entry points wrapped with :func:`lending_math`
switch to that context for the duration of the call and leave the caller's
context untouched.
"""

import decimal
import functools
from collections.abc import Callable, Sequence
from decimal import ROUND_DOWN, Decimal
from typing import ParamSpec, TypeVar

DECIMAL_PRECISION = 40
FRACTION_BITS = 60
U64_BITS = 64

LENDING_CONTEXT = decimal.Context(prec=DECIMAL_PRECISION, rounding=ROUND_DOWN)

# 2**60 rendered at double precision, as the reference client scales it
MULTIPLIER = Decimal(repr(float(2**FRACTION_BITS)))

P = ParamSpec("P")
R = TypeVar("R")


def lending_math(func: Callable[P, R]) -> Callable[P, R]:
    """Run ``func`` under :data:`LENDING_CONTEXT`."""

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with decimal.localcontext(LENDING_CONTEXT):
            return func(*args, **kwargs)

    return wrapper


class Fraction:
    """Immutable wrapper over a raw Sf integer."""

    __slots__ = ("_value_sf",)

    def __init__(self, value_sf: int) -> None:
        if value_sf < 0:
            raise ValueError(f"scaled fraction must be unsigned, got {value_sf}")
        self._value_sf = int(value_sf)

    @property
    def value_sf(self) -> int:
        return self._value_sf

    @lending_math
    def to_decimal(self) -> Decimal:
        return Decimal(self._value_sf) / MULTIPLIER

    @classmethod
    @lending_math
    def from_decimal(cls, value: Decimal | int | str) -> "Fraction":
        """Encode ``value`` with the same scale used for decoding."""
        scaled = Decimal(value) * MULTIPLIER
        return cls(int(scaled.to_integral_value(rounding=ROUND_DOWN)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fraction):
            return NotImplemented
        return self._value_sf == other._value_sf

    def __hash__(self) -> int:
        return hash(self._value_sf)

    def __repr__(self) -> str:
        return f"Fraction({self._value_sf})"


def sf_to_decimal(value_sf: int) -> Decimal:
    return Fraction(value_sf).to_decimal()


def bsf_to_int(limbs: Sequence[int]) -> int:
    """Combine little-endian u64 limbs into one integer."""
    acc = 0
    for limb in reversed(limbs):
        acc = (acc << U64_BITS) + limb
    return acc


def bsf_to_decimal(limbs: Sequence[int]) -> Decimal:
    return Fraction(bsf_to_int(limbs)).to_decimal()


def int_to_bsf(value: int, n_limbs: int = 4) -> tuple[int, ...]:
    """Split an integer into ``n_limbs`` little-endian u64 limbs."""
    mask = (1 << U64_BITS) - 1
    return tuple((value >> (U64_BITS * i)) & mask for i in range(n_limbs))
