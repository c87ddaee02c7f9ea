"""Stable pool math.

Core math functions for stable (StableSwap/Curve-style) pools.
Uses Newton-Raphson iteration for the invariant and for single balances.

IMPORTANT: All intermediates run through 192-bit SafeUint values, so an
overflow raises MathOverflow instead of producing a wrong result, and every
loop is bounded by MAX_LOOP_LIMIT.
"""

from poolmath.constants import (
    AMP_PRECISION,
    BALANCE_THRESHOLD,
    INVARIANT_THRESHOLD,
    MAX_LOOP_LIMIT,
    ONE,
    SPOT_PRICE_REFERENCE_AMOUNT,
)
from poolmath.errors import (
    InvalidAmount,
    StableGetBalanceDidNotConverge,
    StableInvariantDidNotConverge,
)
from poolmath.math.fixed_point import Fp
from poolmath.safe_int import U192, SafeUint


def _require_balances(balances: list[Fp]) -> None:
    if not balances:
        raise InvalidAmount("balances must not be empty")
    for i, balance in enumerate(balances):
        if balance.value <= 0:
            raise InvalidAmount(f"Balance at index {i} must be positive")


def _require_index(name: str, index: int, n_coins: int) -> None:
    if index < 0 or index >= n_coins:
        raise InvalidAmount(f"{name} {index} out of range for {n_coins} tokens")


def _to_fp(value: SafeUint) -> Fp:
    return Fp(value.narrow(128).value)


def calc_invariant(amp: int, balances: list[Fp]) -> Fp:
    """Calculate StableSwap invariant D using Newton-Raphson iteration.

    Solves Ann*S + D = Ann*D + D^(n+1) / (n^n * P) for D, with Ann = amp * n.
    The D^(n+1) / (n^n * P) term (d_p) is rebuilt from the current D on every
    step, one balance at a time.

    Algorithm:
        1. Initial guess: D = sum(balances)
        2. d_p = D, then d_p = d_p * D / (n * balance_i) for each i
        3. D = (Ann*S + n*d_p*AMP_PRECISION) * D
               / ((Ann - AMP_PRECISION) * D + (n + 1) * d_p * AMP_PRECISION)
        4. Stop when |D_new - D_old| <= INVARIANT_THRESHOLD

    Args:
        amp: Amplification parameter (scaled by AMP_PRECISION=1000)
        balances: Scaled token balances

    Returns:
        The invariant D, or zero if every balance is zero

    Raises:
        InvalidAmount: If balances is empty or one balance (but not all) is zero
        StableInvariantDidNotConverge: If iteration doesn't converge
        MathOverflow: If an intermediate exceeds 192 bits
    """
    if not balances:
        raise InvalidAmount("balances must not be empty")

    sum_balances = U192(0)
    for bal in balances:
        sum_balances = sum_balances + bal.value
    if sum_balances == 0:
        return Fp(0)
    _require_balances(balances)

    n_coins = U192(len(balances))
    amp_times_n = U192(amp) * n_coins
    invariant = sum_balances

    for _ in range(MAX_LOOP_LIMIT):
        d_p = invariant
        for bal in balances:
            d_p = (d_p * invariant) // (n_coins * bal.value)

        numerator = (amp_times_n * sum_balances + n_coins * d_p * AMP_PRECISION) * invariant
        denominator = (amp_times_n - AMP_PRECISION) * invariant + (n_coins + 1) * d_p * AMP_PRECISION

        prev_invariant = invariant
        invariant = numerator // denominator

        if invariant.abs_diff(prev_invariant) <= INVARIANT_THRESHOLD:
            return _to_fp(invariant)

    raise StableInvariantDidNotConverge(
        f"Stable invariant did not converge after {MAX_LOOP_LIMIT} iterations"
    )


def solve_balance_given_invariant_and_others(
    amp: int,
    balances: list[Fp],
    invariant: Fp,
    token_index: int,
) -> Fp:
    """Solve for balances[token_index] given D and all other balances.

    Newton-Raphson on y_new = (y^2 + c) / (2y + b - D), where

        c = D^2 * AMP_PRECISION / (Ann * P_D) * balances[token_index]
        b = sum_others + D * AMP_PRECISION / Ann

    and P_D = prod(n * balance_j) / D^(n-1). The value currently at
    token_index cancels out of c, so any positive placeholder works there.
    Divisions that feed y round up so the solved balance never comes out
    smaller than the exact one.

    Args:
        amp: Amplification parameter (scaled by AMP_PRECISION=1000)
        balances: Scaled token balances
        invariant: The invariant D to preserve
        token_index: Index of the token whose balance we're solving for

    Returns:
        The solved balance

    Raises:
        InvalidAmount: If balances is empty, contains a zero, or token_index is out of range
        StableGetBalanceDidNotConverge: If iteration doesn't converge
    """
    _require_balances(balances)
    n = len(balances)
    _require_index("token_index", token_index, n)
    if invariant.value <= 0:
        raise InvalidAmount("invariant must be positive")

    n_coins = U192(n)
    d = U192(invariant.value)
    amp_times_total = U192(amp) * n_coins

    sum_balances = U192(balances[0].value)
    p_d = U192(balances[0].value) * n_coins
    for j in range(1, n):
        p_d = (p_d * balances[j].value * n_coins) // d
        sum_balances = sum_balances + balances[j].value

    sum_others = sum_balances - balances[token_index].value
    inv2 = d * d

    c = (inv2 * AMP_PRECISION).ceiling_div(amp_times_total * p_d) * balances[token_index].value
    b = sum_others + (d * AMP_PRECISION) // amp_times_total

    token_balance = (inv2 + c).ceiling_div(d + b)

    for _ in range(MAX_LOOP_LIMIT):
        prev_token_balance = token_balance

        denominator = token_balance * 2 + b
        if denominator <= d:
            raise StableGetBalanceDidNotConverge("Denominator became non-positive")

        token_balance = (token_balance * token_balance + c).ceiling_div(denominator - d)

        if token_balance.abs_diff(prev_token_balance) <= BALANCE_THRESHOLD:
            return _to_fp(token_balance)

    raise StableGetBalanceDidNotConverge(
        f"Stable get_balance did not converge after {MAX_LOOP_LIMIT} iterations"
    )


def _require_swap_indices(n_coins: int, token_index_in: int, token_index_out: int) -> None:
    _require_index("token_index_in", token_index_in, n_coins)
    _require_index("token_index_out", token_index_out, n_coins)
    if token_index_in == token_index_out:
        raise InvalidAmount("Cannot swap token with itself")


def calc_out_given_in(
    amp: int,
    balances: list[Fp],
    token_index_in: int,
    token_index_out: int,
    amount_in: Fp,
) -> Fp:
    """Calculate output amount for a given input in a stable pool.

    Algorithm:
        1. Calculate current invariant D
        2. Add amount_in to balances[token_index_in]
        3. Solve for new balances[token_index_out] given D
        4. Return: old_balance_out - new_balance_out - 1 (1 unit kept by the pool)

    Args:
        amp: Amplification parameter (scaled by AMP_PRECISION=1000)
        balances: Scaled token balances
        token_index_in: Index of input token
        token_index_out: Index of output token
        amount_in: Scaled input amount

    Returns:
        Scaled output amount

    Raises:
        InvalidAmount: If indices are invalid, amount_in is zero, or the swap yields nothing
        StableInvariantDidNotConverge: If invariant calculation doesn't converge
        StableGetBalanceDidNotConverge: If balance calculation doesn't converge
    """
    _require_balances(balances)
    _require_swap_indices(len(balances), token_index_in, token_index_out)
    if amount_in.value <= 0:
        raise InvalidAmount("amount_in must be positive")

    invariant = calc_invariant(amp, balances)

    new_balances = list(balances)
    new_balances[token_index_in] = balances[token_index_in].add(amount_in)

    new_balance_out = solve_balance_given_invariant_and_others(
        amp, new_balances, invariant, token_index_out
    )

    old_balance_out = balances[token_index_out].value
    # the 1-unit margin must still leave a positive output
    if new_balance_out.value + 1 >= old_balance_out:
        raise InvalidAmount(f"amount_in {amount_in.value} is too small to produce any output")

    return Fp(old_balance_out - new_balance_out.value - 1)


def calc_in_given_out(
    amp: int,
    balances: list[Fp],
    token_index_in: int,
    token_index_out: int,
    amount_out: Fp,
) -> Fp:
    """Calculate input amount for a given output in a stable pool.

    Algorithm:
        1. Calculate current invariant D
        2. Subtract amount_out from balances[token_index_out]
        3. Solve for new balances[token_index_in] given D
        4. Return: new_balance_in - old_balance_in + 1 (trader pays 1 extra unit)

    Raises:
        InvalidAmount: If indices are invalid, amount_out is zero, or
            amount_out >= balance_out
        StableInvariantDidNotConverge: If invariant calculation doesn't converge
        StableGetBalanceDidNotConverge: If balance calculation doesn't converge
    """
    _require_balances(balances)
    _require_swap_indices(len(balances), token_index_in, token_index_out)
    if amount_out.value <= 0:
        raise InvalidAmount("amount_out must be positive")
    if amount_out.value >= balances[token_index_out].value:
        raise InvalidAmount("amount_out must be less than balance_out")

    invariant = calc_invariant(amp, balances)

    new_balances = list(balances)
    new_balances[token_index_out] = balances[token_index_out].sub(amount_out)

    new_balance_in = solve_balance_given_invariant_and_others(
        amp, new_balances, invariant, token_index_in
    )

    return new_balance_in.sub(balances[token_index_in]).add(Fp(1))


def calc_lp_tokens_for_deposit_with_fee(
    amp: int,
    balances: list[Fp],
    amounts_in: list[Fp],
    lp_supply: Fp,
    current_invariant: Fp,
    swap_fee: Fp,
) -> Fp:
    """Calculate LP tokens minted for an arbitrary (possibly unbalanced) deposit.

    Tokens deposited above the pool's ideal ratio behave like a swap into the
    other tokens, so the part above the ideal ratio pays the swap fee before
    it counts toward the new invariant.

    Algorithm:
        1. ratio_i = (balance_i + amount_in_i) / balance_i
        2. ideal = sum(ratio_i * balance_i / total)
        3. For ratio_i > ideal: amount_i = non_taxable + taxable * (1 - fee),
           with non_taxable = balance_i * (ideal - 1)
        4. lp = lp_supply * (D_new / D_old - 1), or 0 if D did not grow

    Raises:
        InvalidAmount: If arrays are empty or mismatched, a balance is zero,
            or lp_supply / current_invariant is zero
    """
    _require_balances(balances)
    if len(amounts_in) != len(balances):
        raise InvalidAmount(
            f"amounts_in ({len(amounts_in)}) must match balances ({len(balances)})"
        )
    if lp_supply.value <= 0 or current_invariant.value <= 0:
        raise InvalidAmount("lp_supply and current_invariant must be positive")

    one = Fp(ONE)
    sum_balances = Fp(0)
    for bal in balances:
        sum_balances = sum_balances.add(bal)

    balance_ratios_with_fee = []
    invariant_ratio_with_fees = Fp(0)
    for bal, amount in zip(balances, amounts_in):
        ratio = bal.add(amount).div_down(bal)
        balance_ratios_with_fee.append(ratio)
        invariant_ratio_with_fees = invariant_ratio_with_fees.add(
            ratio.mul_down(bal.div_down(sum_balances))
        )

    new_balances = []
    for bal, amount, ratio in zip(balances, amounts_in, balance_ratios_with_fee):
        if ratio > invariant_ratio_with_fees:
            non_taxable = bal.mul_down(invariant_ratio_with_fees.saturating_sub(one))
            taxable = amount.saturating_sub(non_taxable)
            amount_without_fee = amount.sub(taxable).add(taxable.mul_down(swap_fee.complement()))
        else:
            amount_without_fee = amount
        new_balances.append(bal.add(amount_without_fee))

    new_invariant = calc_invariant(amp, new_balances)
    invariant_ratio = new_invariant.div_down(current_invariant)
    if invariant_ratio <= one:
        return Fp(0)
    return lp_supply.mul_down(invariant_ratio.sub(one))


def calc_token_out_for_lp_burn(
    amp: int,
    balances: list[Fp],
    token_index: int,
    lp_amount_in: Fp,
    lp_supply: Fp,
    current_invariant: Fp,
    swap_fee: Fp,
) -> Fp:
    """Calculate the single-token amount paid out for burning LP tokens.

    The pool keeps its invariant proportional to the remaining supply. The
    part of the withdrawal a proportional exit would also have paid in this
    token is free; the rest is an implicit swap and pays the swap fee.

    Algorithm:
        1. D_new = D_old * (lp_supply - lp_amount_in) / lp_supply (one wide step, rounded up)
        2. new_balance = balance solved at D_new
        3. raw = balance - new_balance
        4. taxable = raw * (1 - balance / total) (rounded up)
        5. return (raw - taxable) + taxable * (1 - fee)

    Raises:
        InvalidAmount: If the index is invalid, lp_amount_in is zero or not
            below lp_supply, or current_invariant is zero, or the burn is too small to
            pay out anything
    """
    _require_balances(balances)
    _require_index("token_index", token_index, len(balances))
    if lp_amount_in.value <= 0:
        raise InvalidAmount("lp_amount_in must be positive")
    if lp_amount_in.value >= lp_supply.value:
        raise InvalidAmount(
            f"lp_amount_in {lp_amount_in.value} must be below lp_supply {lp_supply.value}"
        )
    if current_invariant.value <= 0:
        raise InvalidAmount("current_invariant must be positive")

    remaining_supply = lp_supply.value - lp_amount_in.value
    new_invariant = _to_fp(
        (U192(current_invariant.value) * remaining_supply).ceiling_div(lp_supply.value)
    )

    new_balance = solve_balance_given_invariant_and_others(
        amp, balances, new_invariant, token_index
    )
    if new_balance.value >= balances[token_index].value:
        raise InvalidAmount(f"lp_amount_in {lp_amount_in.value} is too small to pay out anything")
    amount_out_without_fee = balances[token_index].sub(new_balance)

    sum_balances = Fp(0)
    for bal in balances:
        sum_balances = sum_balances.add(bal)

    current_weight = balances[token_index].div_down(sum_balances)
    taxable = amount_out_without_fee.mul_up(current_weight.complement())
    non_taxable = amount_out_without_fee.sub(taxable)

    return non_taxable.add(taxable.mul_down(swap_fee.complement()))


def calc_tokens_out_proportional(
    balances: list[Fp],
    lp_amount: Fp,
    lp_supply: Fp,
) -> list[Fp]:
    """Token amounts paid out for burning lp_amount, rounded down.

    Raises:
        InvalidAmount: If balances is empty, lp_amount is zero or exceeds lp_supply
    """
    if not balances:
        raise InvalidAmount("balances must not be empty")
    if lp_amount.value <= 0 or lp_amount.value > lp_supply.value:
        raise InvalidAmount(
            f"lp_amount {lp_amount.value} must be in (0, lp_supply={lp_supply.value}]"
        )
    return [_to_fp(U192(bal.value) * lp_amount.value // lp_supply.value) for bal in balances]


def calc_tokens_in_proportional(
    balances: list[Fp],
    lp_amount: Fp,
    lp_supply: Fp,
) -> list[Fp]:
    """Token amounts required to mint lp_amount, rounded up.

    Raises:
        InvalidAmount: If balances is empty, or lp_amount / lp_supply is zero
    """
    if not balances:
        raise InvalidAmount("balances must not be empty")
    if lp_amount.value <= 0 or lp_supply.value <= 0:
        raise InvalidAmount("lp_amount and lp_supply must be positive")
    return [
        _to_fp((U192(bal.value) * lp_amount.value).ceiling_div(lp_supply.value))
        for bal in balances
    ]


def calc_spot_price(
    amp: int,
    balances: list[Fp],
    token_index_in: int,
    token_index_out: int,
) -> Fp:
    """Price of token_in in units of token_out, from a reference swap.

    Swaps SPOT_PRICE_REFERENCE_AMOUNT and divides the output by it. When the
    reference swap produces nothing, falls back to the balance ratio.
    """
    _require_balances(balances)
    _require_swap_indices(len(balances), token_index_in, token_index_out)

    reference = Fp(SPOT_PRICE_REFERENCE_AMOUNT)
    balance_ratio = balances[token_index_out].div_down(balances[token_index_in])
    try:
        amount_out = calc_out_given_in(amp, balances, token_index_in, token_index_out, reference)
    except InvalidAmount:
        return balance_ratio
    return amount_out.div_down(reference)
