"""Scaling and fee helpers.

Functions for scaling token amounts between native decimals and the pool's
common decimal base, and for applying swap fees. Fees are fractions of ONE
(e.g. 3_000_000 is 0.3%).
"""

from poolmath.constants import ONE
from poolmath.errors import InvalidFee, InvalidScalingFactor
from poolmath.math.fixed_point import Fp


def validate_swap_fee(swap_fee: int) -> Fp:
    """Return the fee as Fp.

    Raises:
        InvalidFee: If swap_fee is not in range [0, ONE)
    """
    if swap_fee < 0 or swap_fee >= ONE:
        raise InvalidFee(f"Swap fee must be in range [0, {ONE}), got {swap_fee}")
    return Fp(swap_fee)


def _validate_scaling_factor(scaling_factor: int) -> None:
    if scaling_factor <= 0:
        raise InvalidScalingFactor(f"Scaling factor must be positive, got {scaling_factor}")


def scale_up(amount: int, scaling_factor: int) -> Fp:
    """Scale a raw token amount to the pool's common decimal base.

    Args:
        amount: Amount in token's native decimals
        scaling_factor: Factor to scale by (e.g., 10^3 for a 6-decimal token in a 9-decimal pool)

    Raises:
        InvalidScalingFactor: If scaling_factor <= 0
    """
    _validate_scaling_factor(scaling_factor)
    return Fp(amount * scaling_factor)


def scale_down_down(amount: Fp, scaling_factor: int) -> int:
    """Scale back to token decimals, rounding down (amounts paid out)."""
    _validate_scaling_factor(scaling_factor)
    return amount.value // scaling_factor


def scale_down_up(amount: Fp, scaling_factor: int) -> int:
    """Scale back to token decimals, rounding up (amounts paid in)."""
    _validate_scaling_factor(scaling_factor)
    if amount.value == 0:
        return 0
    return (amount.value - 1) // scaling_factor + 1


def subtract_swap_fee_amount(amount: Fp, swap_fee: int) -> Fp:
    """Remove the swap fee from an amount, rounding the fee up.

    Used on the input of an exact-input weighted swap and on the output of a
    stable swap: amount - ceil(amount * fee) == floor(amount * (1 - fee)).

    Raises:
        InvalidFee: If swap_fee is not in range [0, ONE)
    """
    fee = validate_swap_fee(swap_fee)
    return amount.sub(amount.mul_up(fee))


def add_swap_fee_amount(amount: Fp, swap_fee: int) -> Fp:
    """Gross an amount up so that removing the fee leaves at least ``amount``.

    Formula: amount_with_fee = amount / (1 - fee), rounded up

    Raises:
        InvalidFee: If swap_fee is not in range [0, ONE)
    """
    fee = validate_swap_fee(swap_fee)
    return amount.div_up(fee.complement())
