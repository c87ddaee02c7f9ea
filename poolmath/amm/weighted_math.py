"""Weighted pool math.

Core math functions for constant-weighted-product pools. Every rounding
direction below is chosen so the pool never pays out more, or charges less,
than the exact real-valued formula would.
"""

from poolmath.constants import ONE
from poolmath.errors import InvalidAmount
from poolmath.math.fixed_point import Fp


def _require_positive(**values: Fp) -> None:
    for name, value in values.items():
        if value.value <= 0:
            raise InvalidAmount(f"{name} must be positive")


def calc_invariant(balances: list[Fp], weights: list[Fp]) -> Fp:
    """Calculate the weighted invariant k = prod(balance_i ^ weight_i).

    Each power and the running product round down.

    Args:
        balances: Scaled token balances
        weights: Normalized token weights (same order as balances)

    Returns:
        The invariant k

    Raises:
        InvalidAmount: If arrays are empty or mismatched, a weight is outside
            (0, ONE], or k is zero
    """
    if not balances or len(balances) != len(weights):
        raise InvalidAmount(
            f"balances ({len(balances)}) and weights ({len(weights)}) must be non-empty and match"
        )
    for i, weight in enumerate(weights):
        if not 0 < weight.value <= ONE:
            raise InvalidAmount(f"Weight at index {i} must be in (0, {ONE}], got {weight.value}")

    invariant = Fp.from_int(1)
    for balance, weight in zip(balances, weights):
        invariant = invariant.mul_down(balance.pow_down(weight))

    if invariant.value == 0:
        raise InvalidAmount("Weighted invariant is zero")
    return invariant


def calc_out_given_in(
    balance_in: Fp,
    weight_in: Fp,
    balance_out: Fp,
    weight_out: Fp,
    amount_in: Fp,
) -> Fp:
    """Calculate output amount for a given input (exact input swap).

    Fee should be subtracted from amount_in BEFORE calling this function.

    Formula:
        amount_out = balance_out * (1 - (balance_in / (balance_in + amount_in))^(weight_in / weight_out))

    Args:
        balance_in: Scaled balance of input token
        weight_in: Weight of input token
        balance_out: Scaled balance of output token
        weight_out: Weight of output token
        amount_in: Scaled input amount (after fee subtraction)

    Returns:
        Scaled output amount, rounded down

    Raises:
        InvalidAmount: If any balance, weight or the amount is zero
    """
    _require_positive(
        balance_in=balance_in,
        weight_in=weight_in,
        balance_out=balance_out,
        weight_out=weight_out,
        amount_in=amount_in,
    )

    # base < 1; rounding it up makes the power larger and the output smaller
    base = balance_in.div_up(balance_in.add(amount_in))

    # for base < 1 a smaller exponent gives a larger power
    exponent = weight_in.div_down(weight_out)

    power = base.pow_up(exponent)

    return balance_out.mul_down(power.complement())


def calc_in_given_out(
    balance_in: Fp,
    weight_in: Fp,
    balance_out: Fp,
    weight_out: Fp,
    amount_out: Fp,
) -> Fp:
    """Calculate input amount for a given output (exact output swap).

    Fee should be added to the result AFTER calling this function.

    Formula:
        amount_in = balance_in * ((balance_out / (balance_out - amount_out))^(weight_out / weight_in) - 1)

    Args:
        balance_in: Scaled balance of input token
        weight_in: Weight of input token
        balance_out: Scaled balance of output token
        weight_out: Weight of output token
        amount_out: Scaled output amount

    Returns:
        Scaled input amount (before fee addition), rounded up

    Raises:
        InvalidAmount: If any balance, weight or the amount is zero, or if
            amount_out >= balance_out
    """
    _require_positive(
        balance_in=balance_in,
        weight_in=weight_in,
        balance_out=balance_out,
        weight_out=weight_out,
        amount_out=amount_out,
    )
    if amount_out.value >= balance_out.value:
        raise InvalidAmount(
            f"amount_out {amount_out.value} must be less than balance_out {balance_out.value}"
        )

    # base > 1; every step rounds up so the trader is charged at least the fair amount
    base = balance_out.div_up(balance_out.sub(amount_out))
    exponent = weight_out.div_up(weight_in)
    power = base.pow_up(exponent)

    ratio = power.saturating_sub(Fp(ONE))
    return balance_in.mul_up(ratio)


def calc_lp_to_mint(lp_supply: Fp, k_new: Fp, k_old: Fp, sum_of_weights: Fp) -> Fp:
    """Calculate LP tokens minted for an invariant increase.

    Formula:
        lp_minted = lp_supply * ((k_new / k_old)^sum_of_weights - 1)

    Everything rounds down; no growth mints nothing.

    Raises:
        InvalidAmount: If lp_supply, k_old or sum_of_weights is zero
    """
    _require_positive(lp_supply=lp_supply, k_old=k_old, sum_of_weights=sum_of_weights)

    ratio = k_new.div_down(k_old)
    growth = ratio.pow_down(sum_of_weights).saturating_sub(Fp(ONE))
    return lp_supply.mul_down(growth)


def calc_amounts_in_after_excess_fee(
    balances: list[Fp],
    amounts_in: list[Fp],
    swap_fee: Fp,
) -> list[Fp]:
    """Charge the swap fee on the unbalanced part of a multi-token deposit.

    The balanced part of each deposit is what matches the smallest deposit
    ratio (balance_i * min_ratio). Anything above it is an implicit swap and
    pays the fee; the returned amounts are what may count toward the new
    invariant.

    Args:
        balances: Scaled pool balances
        amounts_in: Scaled deposit amounts (same order)
        swap_fee: Fee as a fraction of ONE

    Returns:
        Fee-net deposit amounts

    Raises:
        InvalidAmount: If arrays are empty or mismatched, or a balance is zero
    """
    if not balances or len(balances) != len(amounts_in):
        raise InvalidAmount(
            f"balances ({len(balances)}) and amounts_in ({len(amounts_in)}) must be non-empty and match"
        )
    for i, balance in enumerate(balances):
        if balance.value <= 0:
            raise InvalidAmount(f"Balance at index {i} must be positive")

    min_ratio = min(amount.div_down(balance) for balance, amount in zip(balances, amounts_in))
    fee_complement = swap_fee.complement()

    amounts_after_fee = []
    for balance, amount in zip(balances, amounts_in):
        balanced = balance.mul_down(min_ratio)
        excess = amount.saturating_sub(balanced)
        amounts_after_fee.append(amount.sub(excess).add(excess.mul_down(fee_complement)))
    return amounts_after_fee


def calc_spot_price(balance_in: Fp, weight_in: Fp, balance_out: Fp, weight_out: Fp) -> Fp:
    """Marginal price of token_in in units of token_out, rounded down.

    Formula:
        price = (balance_out / balance_in) * (weight_in / weight_out)
    """
    _require_positive(
        balance_in=balance_in,
        weight_in=weight_in,
        balance_out=balance_out,
        weight_out=weight_out,
    )
    return balance_out.div_down(balance_in).mul_down(weight_in.div_down(weight_out))
