"""Fixed point (Fp) math library.

Values are unsigned integers scaled by SCALE = 10^9. Each Fp carries its
working width (64 or 128 bits); products and dividends are formed in twice
that width and the result must fit back into it, otherwise MathOverflow is
raised. Nothing ever wraps.

The general power function evaluates exp(y * ln(x)) with Balancer's
LogExpMath algorithm at 18 decimals:
https://github.com/balancer-labs/balancer-v2-monorepo/blob/6c9e24e22d0c46cca6dd15861d3d33da61a60b98/pkg/solidity-utils/contracts/math/LogExpMath.sol

Operands are lifted from 9 to 18 decimals (exact), the 18-decimal result is
widened by a relative error margin of 10^-14 plus one unit, and then brought
back to 9 decimals rounding in the requested direction. pow_down is therefore
never above the true value and pow_up never below it, and both stay within
one raw unit plus 10^-14 relative error of it.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import ClassVar

from poolmath.constants import ONE
from poolmath.errors import DivideByZero, MathOverflow
from poolmath.safe_int import SafeUint

__all__ = [
    # Classes
    "Fp",
    # Errors
    "LogExpMathError",
    "XOutOfBounds",
    "YOutOfBounds",
    "ProductOutOfBounds",
    "InvalidExponent",
    # Functions
    "pow_raw",
    "exp",
    # Constants
    "ONE_18",
    "ONE_20",
    "ONE_36",
    "FP_WIDTHS",
]

FP_WIDTHS = (64, 128)

# =============================================================================
# LogExpMath constants (18-decimal domain)
# =============================================================================

ONE_18 = 10**18
ONE_20 = 10**20
ONE_36 = 10**36

# 9 -> 18 decimals
_LIFT = ONE_18 // ONE

MAX_NATURAL_EXPONENT = 130 * ONE_18
MIN_NATURAL_EXPONENT = -41 * ONE_18

# ln is computed with 36 decimals inside (0.9, 1.1)
LN_36_LOWER_BOUND = ONE_18 - 10**17
LN_36_UPPER_BOUND = ONE_18 + 10**17

# y * ln(x) must stay inside a signed 256-bit word
MILD_EXPONENT_BOUND = (1 << 254) // ONE_20

# (x_n, e^x_n) pairs, largest first. The first two are 18-decimal values,
# the rest 20-decimal.
_POWERS_18 = (
    (128 * ONE_18, 38877084059945950922200000000000000000000000000000000000),
    (64 * ONE_18, 6235149080811616882910000000),
)
_POWERS_20 = (
    (32 * ONE_20, 7896296018268069516100000000000000),
    (16 * ONE_20, 888611052050787263676000000),
    (8 * ONE_20, 298095798704172827474000),
    (4 * ONE_20, 5459815003314423907810),
    (2 * ONE_20, 738905609893065022723),
    (1 * ONE_20, 271828182845904523536),
    (ONE_20 // 2, 164872127070012814685),
    (ONE_20 // 4, 128402541668774148407),
    (ONE_20 // 8, 113314845306682631683),
    (ONE_20 // 16, 106449445891785942956),
)


# =============================================================================
# Error classes
# =============================================================================


class LogExpMathError(MathOverflow):
    """Base error for the exp/ln approximation."""

    pass


class XOutOfBounds(LogExpMathError):
    """Base x is out of valid range."""

    pass


class YOutOfBounds(LogExpMathError):
    """Exponent y exceeds MILD_EXPONENT_BOUND."""

    pass


class ProductOutOfBounds(LogExpMathError):
    """Result of y * ln(x) is outside valid range for exp."""

    pass


class InvalidExponent(LogExpMathError):
    """Exponent is out of valid range for exp."""

    pass


# =============================================================================
# exp / ln at 18 decimals
# =============================================================================


def _div_trunc(a: int, b: int) -> int:
    """Integer division truncating toward zero.

    Python's // floors toward negative infinity; the algorithm expects
    truncation, which only differs when the operands have different signs.
    """
    if b == 0:
        raise DivideByZero("Division by zero in _div_trunc")
    if (a >= 0) == (b >= 0):
        return a // b
    return -(abs(a) // abs(b))


def _ln(a: int) -> int:
    """Natural logarithm of a positive 18-decimal value."""
    if a < ONE_18:
        # ln(a) = -ln(1/a)
        return -_ln((ONE_18 * ONE_18) // a)

    total = 0
    for x_n, a_n in _POWERS_18:
        if a >= a_n * ONE_18:
            a //= a_n
            total += x_n

    # Continue at 20 decimals
    total *= 100
    a *= 100
    for x_n, a_n in _POWERS_20:
        if a >= a_n:
            a = (a * ONE_20) // a_n
            total += x_n

    # ln(a) = 2 * arctanh(z), z = (a - 1) / (a + 1), odd terms up to z^11
    z = ((a - ONE_20) * ONE_20) // (a + ONE_20)
    z_squared = (z * z) // ONE_20
    num = z
    series = num
    for i in range(3, 12, 2):
        num = (num * z_squared) // ONE_20
        series += num // i

    return (total + 2 * series) // 100


def _ln_36(x: int) -> int:
    """Natural logarithm at 36 decimals of an 18-decimal value close to one."""
    x *= ONE_18
    z = _div_trunc((x - ONE_36) * ONE_36, x + ONE_36)
    z_squared = _div_trunc(z * z, ONE_36)
    num = z
    series = num
    for i in range(3, 16, 2):
        num = _div_trunc(num * z_squared, ONE_36)
        series += _div_trunc(num, i)
    return series * 2


def exp(x: int) -> int:
    """Compute e^x where x is 18-decimal fixed-point (may be negative).

    Raises:
        InvalidExponent: If x is outside [MIN_NATURAL_EXPONENT, MAX_NATURAL_EXPONENT]
    """
    if not (MIN_NATURAL_EXPONENT <= x <= MAX_NATURAL_EXPONENT):
        raise InvalidExponent(f"Exponent {x} outside valid range")

    if x < 0:
        return (ONE_18 * ONE_18) // exp(-x)

    first_an = 1
    for x_n, a_n in _POWERS_18:
        if x >= x_n:
            x -= x_n
            first_an = a_n
            break

    x *= 100
    product = ONE_20
    # the last two 20-decimal powers are only needed by ln
    for x_n, a_n in _POWERS_20[:-2]:
        if x >= x_n:
            x -= x_n
            product = (product * a_n) // ONE_20

    # Taylor series up to x^12 / 12!
    series = ONE_20 + x
    term = x
    for i in range(2, 13):
        term = ((term * x) // ONE_20) // i
        series += term

    return (((product * series) // ONE_20) * first_an) // 100


def pow_raw(x: int, y: int) -> int:
    """Compute x^y for non-negative 18-decimal x and y, without error margin.

    Raises:
        XOutOfBounds: If x does not fit in a signed 256-bit word
        YOutOfBounds: If y exceeds MILD_EXPONENT_BOUND
        ProductOutOfBounds: If y * ln(x) is outside the exp range
    """
    if y == 0:
        return ONE_18
    if x == 0:
        return 0

    if x >> 255:
        raise XOutOfBounds(f"Base {x} too large")
    if y >= MILD_EXPONENT_BOUND:
        raise YOutOfBounds(f"Exponent {y} exceeds bound")

    if LN_36_LOWER_BOUND < x < LN_36_UPPER_BOUND:
        ln_36_x = _ln_36(x)
        # split ln_36_x so the product with y keeps its precision
        whole = _div_trunc(ln_36_x, ONE_18)
        fraction = ln_36_x - whole * ONE_18
        logx_times_y = whole * y + _div_trunc(fraction * y, ONE_18)
    else:
        logx_times_y = _ln(x) * y

    logx_times_y = _div_trunc(logx_times_y, ONE_18)

    if not (MIN_NATURAL_EXPONENT <= logx_times_y <= MAX_NATURAL_EXPONENT):
        raise ProductOutOfBounds(f"Product {logx_times_y} outside valid range")

    return exp(logx_times_y)


# =============================================================================
# Fp class
# =============================================================================


class Fp:
    """9-decimal fixed-point number stored as a width-checked int.

    Example: 1.5 is stored as 1_500_000_000.
    """

    ONE: ClassVar[int] = ONE
    # Relative error of pow_raw, in 18-decimal units (10^-14)
    MAX_POW_RELATIVE_ERROR: ClassVar[int] = 10_000

    __slots__ = ("value", "bits")
    __hash__ = None  # type: ignore[assignment]  # Unhashable since we define __eq__

    def __init__(self, value: int, bits: int = 128) -> None:
        """Create Fp from a raw scaled value.

        Raises:
            Underflow: If value is negative
            MathOverflow: If value does not fit in ``bits``
        """
        if bits not in FP_WIDTHS:
            raise ValueError(f"Unsupported Fp width {bits}, expected one of {FP_WIDTHS}")
        self.value = SafeUint(value, bits).value
        self.bits = bits

    @classmethod
    def from_int(cls, i: int, bits: int = 128) -> Fp:
        """Create from an integer (will be scaled by 10^9)."""
        return cls(i * cls.ONE, bits)

    def to_decimal(self) -> Decimal:
        """Convert to Decimal for display."""
        return Decimal(self.value) / Decimal(self.ONE)

    # --- Rounding-explicit arithmetic ---

    def _wide(self, other: Fp) -> tuple[SafeUint, int]:
        """Self as a double-width integer, plus the result width."""
        bits = max(self.bits, other.bits)
        return SafeUint(self.value, 2 * bits), bits

    def mul_down(self, other: Fp) -> Fp:
        """Multiply with floor rounding: (a * b) // 10^9"""
        wide, bits = self._wide(other)
        return Fp((wide * other.value // self.ONE).narrow(bits).value, bits)

    def mul_up(self, other: Fp) -> Fp:
        """Multiply with ceiling rounding."""
        wide, bits = self._wide(other)
        return Fp((wide * other.value).ceiling_div(self.ONE).narrow(bits).value, bits)

    def div_down(self, other: Fp) -> Fp:
        """Divide with floor rounding: (a * 10^9) // b"""
        if other.value == 0:
            raise DivideByZero("Fp division by zero")
        wide, bits = self._wide(other)
        return Fp((wide * self.ONE // other.value).narrow(bits).value, bits)

    def div_up(self, other: Fp) -> Fp:
        """Divide with ceiling rounding."""
        if other.value == 0:
            raise DivideByZero("Fp division by zero")
        wide, bits = self._wide(other)
        return Fp((wide * self.ONE).ceiling_div(other.value).narrow(bits).value, bits)

    def complement(self) -> Fp:
        """Return 1 - self. Clamps to 0 if self > 1."""
        return Fp(max(0, self.ONE - self.value), self.bits)

    def add(self, other: Fp) -> Fp:
        """Checked addition."""
        bits = max(self.bits, other.bits)
        return Fp((SafeUint(self.value, bits) + other.value).value, bits)

    def sub(self, other: Fp) -> Fp:
        """Checked subtraction.

        Raises:
            Underflow: If other > self
        """
        bits = max(self.bits, other.bits)
        return Fp((SafeUint(self.value, bits) - other.value).value, bits)

    def saturating_sub(self, other: Fp) -> Fp:
        """Subtract, clamping to 0 instead of raising."""
        return Fp(max(0, self.value - other.value), max(self.bits, other.bits))

    # --- Powers ---

    def _pow_exact(self, exponent: Fp, mul: Callable[[Fp, Fp], Fp]) -> Fp | None:
        """Exact power for exponents 0..4, using the given rounding primitive."""
        if exponent.value == 0:
            return Fp(self.ONE, self.bits)
        if exponent.value == self.ONE:
            return self
        if exponent.value == 2 * self.ONE:
            return mul(self, self)
        if exponent.value == 3 * self.ONE:
            square = mul(self, self)
            return mul(square, self)
        if exponent.value == 4 * self.ONE:
            square = mul(self, self)
            return mul(square, square)
        return None

    def _pow_margin(self, exponent: Fp) -> tuple[int, int]:
        """pow_raw at 18 decimals and its error margin."""
        raw = pow_raw(self.value * _LIFT, exponent.value * _LIFT)
        product = raw * self.MAX_POW_RELATIVE_ERROR
        margin = ((product - 1) // ONE_18 + 1 if product > 0 else 0) + 1
        return raw, margin

    def pow_down(self, exponent: Fp) -> Fp:
        """Compute self^exponent, never rounding above the true value."""
        exact = self._pow_exact(exponent, Fp.mul_down)
        if exact is not None:
            return exact
        raw, margin = self._pow_margin(exponent)
        if raw < margin:
            return Fp(0, self.bits)
        return Fp((raw - margin) // _LIFT, self.bits)

    def pow_up(self, exponent: Fp) -> Fp:
        """Compute self^exponent, never rounding below the true value."""
        exact = self._pow_exact(exponent, Fp.mul_up)
        if exact is not None:
            return exact
        raw, margin = self._pow_margin(exponent)
        return Fp((raw + margin - 1) // _LIFT + 1, self.bits)

    # --- Comparison ---

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fp):
            return NotImplemented
        return self.value == other.value

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Fp):
            return NotImplemented
        return self.value < other.value

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Fp):
            return NotImplemented
        return self.value <= other.value

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Fp):
            return NotImplemented
        return self.value > other.value

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Fp):
            return NotImplemented
        return self.value >= other.value

    def __repr__(self) -> str:
        return f"Fp({self.value})"

    def __str__(self) -> str:
        return str(self.to_decimal())
