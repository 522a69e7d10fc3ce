"""
Fixed point -- Immutable, self-validating NAV and ratio value objects.

Responsibility:
    Provides the numeric foundation for all tranche accounting: ``NAV``
    (a non-negative integer count of 1e-18 value units), ``Ratio``
    (a WAD-scaled fraction, 1e18 == 100%) and the directional
    ``mul_div`` primitive every rounding decision goes through.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module and by all engines.

Invariants enforced:
    - Integer-only arithmetic: NAV and Ratio hold Python ints.  Sums and
      differences are exact, so conservation is checked with ``==``.
    - Non-negativity: a NAV can never be negative; subtracting past zero
      raises instead of wrapping.  Debts are NAVs, so they cannot go
      negative either.
    - Explicit rounding: every product/quotient names FLOOR or CEIL.
    - No floats: constructing from ``float`` is rejected.

Failure modes:
    - TypeError on float or bool input, or when mixing NAV and Ratio.
    - ValueError when a value is negative or finer than the unit precision.
    - ValueError from ``NAV.__sub__`` when the result would be negative.
    - ZeroDivisionError from ``mul_div`` on a zero denominator.

Audit relevance:
    Rounding direction is part of the accounting policy (ambiguous rounding
    favors the senior tranche).  Centralizing it in ``mul_div`` makes every
    rounding site greppable.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum

# 1e18 fixed-point scale for ratios ("WAD") and NAV units.
WAD: int = 10**18
NAV_DECIMALS: int = 18
NAV_SCALE: int = 10**NAV_DECIMALS


class Rounding(str, Enum):
    """Rounding direction for ``mul_div``."""

    FLOOR = "floor"
    CEIL = "ceil"


def _require_int(name: str, value: object) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    return value


def mul_div(x: int, y: int, denominator: int, rounding: Rounding = Rounding.FLOOR) -> int:
    """
    Compute ``x * y / denominator`` with an explicit rounding direction.

    Preconditions:
        - x, y are non-negative ints; denominator is a positive int.

    Postconditions:
        - FLOOR returns the largest q with q * denominator <= x * y.
        - CEIL returns the smallest q with q * denominator >= x * y.

    Raises:
        TypeError: on non-int operands.
        ValueError: on negative operands.
        ZeroDivisionError: if denominator is zero.
    """
    _require_int("x", x)
    _require_int("y", y)
    _require_int("denominator", denominator)
    if x < 0 or y < 0:
        raise ValueError(f"mul_div operands must be non-negative: x={x}, y={y}")
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    if denominator < 0:
        raise ValueError(f"mul_div denominator must be positive: {denominator}")

    quotient, remainder = divmod(x * y, denominator)
    if rounding is Rounding.CEIL and remainder:
        quotient += 1
    return quotient


def _scaled_units(value: Decimal | str | int, scale: int, what: str) -> int:
    """Convert a decimal literal to an exact integer count of 1/scale units."""
    if isinstance(value, float):
        raise TypeError(f"{what} must not be constructed from float: {value!r}")
    if isinstance(value, bool):
        raise TypeError(f"{what} must not be constructed from bool")
    try:
        dec = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid {what}: {value!r}") from e
    if not dec.is_finite():
        raise ValueError(f"Invalid {what}: {value!r}")

    with localcontext() as ctx:
        ctx.prec = 100
        scaled = dec * scale
        integral = scaled.to_integral_value()
    if scaled != integral:
        raise ValueError(f"{what} {value} is finer than 1/{scale} precision")
    return int(integral)


def _units_to_decimal(units: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = 100
        return Decimal(units).scaleb(-NAV_DECIMALS)


def _format_units(units: int) -> str:
    with localcontext() as ctx:
        ctx.prec = 100
        return f"{Decimal(units).scaleb(-NAV_DECIMALS).normalize():f}"


@dataclass(frozen=True, slots=True, order=True)
class NAV:
    """
    Net asset value in fixed-point units.

    Contract:
        Wraps a non-negative int count of 1e-18 value units.  All NAVs in a
        market share one unit of account (conversion is out of scope).

    Guarantees:
        - Immutable, hashable, totally ordered by ``units``.
        - ``units`` is always a non-negative int.
        - ``a + b`` and ``a - b`` are exact; ``a - b`` never goes negative.

    Non-goals:
        - Does NOT model signed deltas.  Compare two NAVs and take the
          larger minus the smaller.
    """

    units: int

    def __post_init__(self) -> None:
        _require_int("NAV units", self.units)
        if self.units < 0:
            raise ValueError(f"NAV cannot be negative: {self.units}")

    @classmethod
    def of(cls, value: Decimal | str | int) -> NAV:
        """
        Create a NAV from a decimal amount (e.g. ``NAV.of("800.5")``).

        Raises:
            TypeError: on float input.
            ValueError: on negative or over-precise amounts.
        """
        return cls(_scaled_units(value, NAV_SCALE, "NAV"))

    @classmethod
    def zero(cls) -> NAV:
        return cls(0)

    @property
    def is_zero(self) -> bool:
        return self.units == 0

    def to_decimal(self) -> Decimal:
        """Exact decimal representation."""
        return _units_to_decimal(self.units)

    def __add__(self, other: NAV) -> NAV:
        if not isinstance(other, NAV):
            return NotImplemented
        return NAV(self.units + other.units)

    def __sub__(self, other: NAV) -> NAV:
        if not isinstance(other, NAV):
            return NotImplemented
        if other.units > self.units:
            raise ValueError(f"NAV subtraction underflow: {self} - {other}")
        return NAV(self.units - other.units)

    def saturating_sub(self, other: NAV) -> NAV:
        """Subtract, flooring the result at zero."""
        return NAV(max(self.units - other.units, 0))

    def mul_ratio(self, ratio: Ratio, rounding: Rounding = Rounding.FLOOR) -> NAV:
        """``self * ratio`` rounded in the given direction."""
        if not isinstance(ratio, Ratio):
            raise TypeError(f"mul_ratio expects a Ratio, got {type(ratio).__name__}")
        return NAV(mul_div(self.units, ratio.wad, WAD, rounding))

    def mul_div(self, numerator: int, denominator: int, rounding: Rounding = Rounding.FLOOR) -> NAV:
        """``self * numerator / denominator`` rounded in the given direction."""
        return NAV(mul_div(self.units, numerator, denominator, rounding))

    def __str__(self) -> str:
        return _format_units(self.units)

    def __repr__(self) -> str:
        return f"NAV({self})"


@dataclass(frozen=True, slots=True, order=True)
class Ratio:
    """
    WAD-scaled non-negative fraction (``Ratio.one().wad == 10**18``).

    Contract:
        Used for coverage ratio, beta, protocol fee rates, yield shares and
        utilization.  Values above one are representable (beta,
        utilization); callers bound them where the domain requires.

    Guarantees:
        - Immutable, hashable, totally ordered by ``wad``.
        - ``wad`` is always a non-negative int.
    """

    wad: int

    def __post_init__(self) -> None:
        _require_int("Ratio wad", self.wad)
        if self.wad < 0:
            raise ValueError(f"Ratio cannot be negative: {self.wad}")

    @classmethod
    def of(cls, value: Decimal | str | int) -> Ratio:
        """Create a Ratio from a decimal fraction (e.g. ``Ratio.of("0.2")``)."""
        return cls(_scaled_units(value, WAD, "Ratio"))

    @classmethod
    def zero(cls) -> Ratio:
        return cls(0)

    @classmethod
    def one(cls) -> Ratio:
        return cls(WAD)

    @property
    def is_zero(self) -> bool:
        return self.wad == 0

    def clamp_unit(self) -> Ratio:
        """Clamp into [0, 1]."""
        return self if self.wad <= WAD else Ratio(WAD)

    def mul(self, other: Ratio, rounding: Rounding = Rounding.FLOOR) -> Ratio:
        """``self * other`` as a Ratio."""
        if not isinstance(other, Ratio):
            raise TypeError(f"Ratio.mul expects a Ratio, got {type(other).__name__}")
        return Ratio(mul_div(self.wad, other.wad, WAD, rounding))

    def complement(self) -> Ratio:
        """``1 - self``; requires self <= 1."""
        if self.wad > WAD:
            raise ValueError(f"Ratio complement undefined above one: {self}")
        return Ratio(WAD - self.wad)

    def to_decimal(self) -> Decimal:
        return _units_to_decimal(self.wad)

    def __str__(self) -> str:
        return _format_units(self.wad)

    def __repr__(self) -> str:
        return f"Ratio({self})"
