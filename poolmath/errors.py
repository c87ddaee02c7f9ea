"""Pool math error classes.

Every failure of the engine or of the pool accounting layer is a
PoolMathError, so callers can abort an operation with a single except clause.
"""


class PoolMathError(Exception):
    """Base error for pool math operations."""

    pass


class MathOverflow(PoolMathError, ArithmeticError):
    """Checked arithmetic exceeded its working width."""

    pass


class Underflow(MathOverflow):
    """Checked subtraction would produce a negative result."""

    pass


class DivideByZero(PoolMathError, ZeroDivisionError):
    """Division by zero in fixed-point or checked integer arithmetic."""

    pass


class InvalidAmount(PoolMathError, ValueError):
    """Structurally invalid input (empty/mismatched arrays, zero amount, bad index)."""

    pass


class InvalidFee(InvalidAmount):
    """Swap fee must be in range [0, ONE)."""

    pass


class InvalidScalingFactor(InvalidAmount):
    """Scaling factor must be positive."""

    pass


class AmpOutOfRange(InvalidAmount):
    """Amplification must be within [MIN_AMP, MAX_AMP]."""

    pass


class TokenNotFound(InvalidAmount):
    """Mint is not part of the pool."""

    pass


class NonConvergence(PoolMathError):
    """Iterative solver exhausted its step budget."""

    pass


class StableInvariantDidNotConverge(NonConvergence):
    """Newton-Raphson iteration for stable invariant D did not converge."""

    pass


class StableGetBalanceDidNotConverge(NonConvergence):
    """Newton-Raphson iteration for stable balance Y did not converge."""

    pass


class SlippageExceeded(PoolMathError):
    """Result is outside the caller's min/max bound."""

    pass


class PoolInactive(PoolMathError):
    """Operation attempted on an inactive pool."""

    pass
