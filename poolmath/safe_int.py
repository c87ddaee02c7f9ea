"""Width-checked unsigned integers for pool math.

This module provides SafeUint, a lightweight wrapper that makes arithmetic
behave like checked unsigned integers of a fixed bit width:
- Addition and multiplication beyond the width raise MathOverflow
- Subtraction below zero raises Underflow
- Division by zero raises DivideByZero

A binary operation runs in the wider of its operands' widths, so wrapping
one operand in a wider type promotes the whole expression. Plain ints are
accepted as operands and adopt the SafeUint's width.

Usage pattern:
    from poolmath.safe_int import U192

    def calculate(a: int, b: int, c: int) -> int:
        # Wrap at entry, in the width the intermediates need
        sa, sb = U192(a), U192(b)

        # Natural arithmetic - automatically checked
        result = (sa * sb) // c   # Raises if c == 0 or a*b overflows 192 bits
        remainder = sa - sb       # Raises if b > a

        # Narrow and unwrap at exit
        return result.narrow(64).value
"""

from __future__ import annotations

from poolmath.errors import DivideByZero, MathOverflow, Underflow

SUPPORTED_WIDTHS = (64, 128, 192, 256)


class SafeUint:
    """Unsigned integer with checked arithmetic in a fixed bit width.

    Attributes:
        value: The underlying integer value (read-only)
        bits: The working width in bits (read-only)
    """

    __slots__ = ("_value", "_bits")
    _value: int
    _bits: int

    def __init__(self, value: int | SafeUint, bits: int = 256) -> None:
        """Create a SafeUint from an integer or another SafeUint.

        Raises:
            TypeError: If value is not an int or SafeUint
            ValueError: If bits is not a supported width
            Underflow: If value is negative
            MathOverflow: If value does not fit in ``bits``
        """
        if bits not in SUPPORTED_WIDTHS:
            raise ValueError(f"Unsupported width {bits}, expected one of {SUPPORTED_WIDTHS}")
        if isinstance(value, SafeUint):
            raw = value._value
        elif isinstance(value, int) and not isinstance(value, bool):
            raw = value
        else:
            raise TypeError(f"SafeUint requires int, got {type(value).__name__}")
        self._bits = bits
        self._value = _check(raw, bits)

    @property
    def value(self) -> int:
        """The underlying integer value."""
        return self._value

    @property
    def bits(self) -> int:
        """The working width in bits."""
        return self._bits

    def __repr__(self) -> str:
        return f"U{self._bits}({self._value})"

    def __str__(self) -> str:
        return str(self._value)

    def __hash__(self) -> int:
        return hash(self._value)

    # --- Width management ---

    def narrow(self, bits: int) -> SafeUint:
        """Convert to a narrower width.

        Raises:
            MathOverflow: If the value does not fit
        """
        return SafeUint(self._value, bits)

    # --- Arithmetic operations ---

    def __add__(self, other: SafeUint | int) -> SafeUint:
        other_val, bits = _operand(self, other)
        return SafeUint(self._value + other_val, bits)

    def __radd__(self, other: int) -> SafeUint:
        return self.__add__(other)

    def __sub__(self, other: SafeUint | int) -> SafeUint:
        """Subtract other from self.

        Raises:
            Underflow: If result would be negative
        """
        other_val, bits = _operand(self, other)
        result = self._value - other_val
        if result < 0:
            raise Underflow(f"Underflow: {self._value} - {other_val} = {result}")
        return SafeUint(result, bits)

    def __rsub__(self, other: int) -> SafeUint:
        result = other - self._value
        if result < 0:
            raise Underflow(f"Underflow: {other} - {self._value} = {result}")
        return SafeUint(result, self._bits)

    def __mul__(self, other: SafeUint | int) -> SafeUint:
        other_val, bits = _operand(self, other)
        return SafeUint(self._value * other_val, bits)

    def __rmul__(self, other: int) -> SafeUint:
        return self.__mul__(other)

    def __floordiv__(self, other: SafeUint | int) -> SafeUint:
        """Integer division rounding down.

        Raises:
            DivideByZero: If other is zero
        """
        other_val, bits = _operand(self, other)
        if other_val == 0:
            raise DivideByZero(f"Division by zero: {self._value} // 0")
        return SafeUint(self._value // other_val, bits)

    def ceiling_div(self, other: SafeUint | int) -> SafeUint:
        """Integer division rounding up.

        Raises:
            DivideByZero: If other is zero
        """
        other_val, bits = _operand(self, other)
        if other_val == 0:
            raise DivideByZero(f"Ceiling division by zero: {self._value}")
        if self._value == 0:
            return SafeUint(0, bits)
        return SafeUint((self._value - 1) // other_val + 1, bits)

    def abs_diff(self, other: SafeUint | int) -> SafeUint:
        """Absolute difference, never underflows."""
        other_val, bits = _operand(self, other)
        return SafeUint(abs(self._value - other_val), bits)

    def saturating_sub(self, other: SafeUint | int) -> SafeUint:
        """Subtract, clamping result to zero instead of raising."""
        other_val, bits = _operand(self, other)
        return SafeUint(max(0, self._value - other_val), bits)

    # --- Comparison operations ---

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SafeUint):
            return self._value == other._value
        if isinstance(other, int):
            return self._value == other
        return NotImplemented

    def __lt__(self, other: SafeUint | int) -> bool:
        return self._value < _extract_value(other)

    def __le__(self, other: SafeUint | int) -> bool:
        return self._value <= _extract_value(other)

    def __gt__(self, other: SafeUint | int) -> bool:
        return self._value > _extract_value(other)

    def __ge__(self, other: SafeUint | int) -> bool:
        return self._value >= _extract_value(other)

    # --- Conversion ---

    def __int__(self) -> int:
        return self._value

    def __index__(self) -> int:
        return self._value

    def __bool__(self) -> bool:
        return self._value != 0


def _check(value: int, bits: int) -> int:
    if value < 0:
        raise Underflow(f"Negative value cannot be U{bits}: {value}")
    if value >> bits:
        raise MathOverflow(f"Value exceeds U{bits} max: {value}")
    return value


def _extract_value(x: SafeUint | int) -> int:
    if isinstance(x, SafeUint):
        return x._value
    return x


def _operand(this: SafeUint, other: SafeUint | int) -> tuple[int, int]:
    """Return (other's value, width of the operation)."""
    if isinstance(other, SafeUint):
        return other._value, max(this._bits, other._bits)
    return other, this._bits


def U64(value: int | SafeUint) -> SafeUint:  # noqa: N802
    """Wrap value as a checked 64-bit integer (native balance width)."""
    return SafeUint(value, 64)


def U192(value: int | SafeUint) -> SafeUint:  # noqa: N802
    """Wrap value as a checked 192-bit integer (stable math intermediates)."""
    return SafeUint(value, 192)
