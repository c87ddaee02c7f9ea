"""Pool accounting layer.

Stateless classes that run swaps, deposits and withdrawals against an
immutable pool value: raw amounts are scaled up, the engine is called,
results are scaled down and checked against the caller's bounds, and a new
pool value is built only once every step succeeded.

Amounts paid out round down and amounts paid in round up, so the pool
never loses value to rounding.
"""

from __future__ import annotations

import math

import structlog

from poolmath.errors import (
    InvalidAmount,
    PoolInactive,
    PoolMathError,
    SlippageExceeded,
)
from poolmath.math.fixed_point import Fp
from poolmath.safe_int import U64

from . import stable_math, weighted_math
from .base import LiquidityResult, SwapResult
from .pools import PoolToken, StablePool, WeightedPool
from .scaling import add_swap_fee_amount, subtract_swap_fee_amount, validate_swap_fee

logger = structlog.get_logger()


# =============================================================================
# Shared helpers
# =============================================================================


def _require_active(pool: WeightedPool | StablePool, operation: str) -> None:
    if not pool.is_active:
        logger.debug("amm_pool_inactive", operation=operation)
        raise PoolInactive(f"Pool is inactive, cannot {operation}")


def _swap_indices(pool: WeightedPool | StablePool, mint_in: str, mint_out: str) -> tuple[int, int]:
    if mint_in == mint_out:
        raise InvalidAmount(f"Cannot swap {mint_in} with itself")
    return pool.token_index(mint_in), pool.token_index(mint_out)


def _require_amount(name: str, amount: int) -> None:
    if amount <= 0:
        raise InvalidAmount(f"{name} must be positive, got {amount}")


def _require_per_token(pool: WeightedPool | StablePool, name: str, amounts: list[int]) -> None:
    if len(amounts) != len(pool.tokens):
        raise InvalidAmount(f"{name} has {len(amounts)} entries, pool has {len(pool.tokens)} tokens")
    if any(amount < 0 for amount in amounts):
        raise InvalidAmount(f"{name} must not contain negative amounts: {amounts}")


def _paid_out(token: PoolToken, scaled_amount: Fp) -> tuple[int, Fp]:
    """Raw amount paid out (rounded down) and the scaled amount it removes."""
    raw = token.scale_amount_down(scaled_amount)
    return raw, token.scale_amount_up(raw)


def _paid_in(token: PoolToken, scaled_amount: Fp) -> tuple[int, Fp]:
    """Raw amount paid in (rounded up) and the scaled amount it adds."""
    raw = token.scale_amount_down(scaled_amount, round_up=True)
    return raw, token.scale_amount_up(raw)


def _integer_nth_root(value: int, n: int) -> int:
    """floor(value ** (1/n)) using integer Newton iteration."""
    if value < 2:
        return value
    if n == 2:
        return math.isqrt(value)
    # Start above the root; the iteration then decreases monotonically to it
    x = 1 << -(-value.bit_length() // n)
    while True:
        y = ((n - 1) * x + value // x ** (n - 1)) // n
        if y >= x:
            return x
        x = y


def _initial_lp_amount(amounts: list[Fp]) -> Fp:
    """LP minted by the first deposit: n-th root of the product of the scaled amounts."""
    product = 1
    for amount in amounts:
        product *= amount.value
    # LP supply is a native u64 amount
    return Fp(U64(_integer_nth_root(product, len(amounts))).value)


def _proportional_deposit(
    pool: WeightedPool | StablePool,
    lp_supply: int,
    lp_amount: int,
    max_amounts_in: list[int],
) -> tuple[list[int], int, list[Fp]]:
    """Raw amounts in, LP minted and new balances for a proportional deposit.

    The first deposit (lp_supply == 0) takes ``max_amounts_in`` as-is and
    ``lp_amount`` is the minimum it must mint.
    """
    _require_per_token(pool, "max_amounts_in", max_amounts_in)
    balances = pool.balances()

    if lp_supply == 0:
        if any(amount <= 0 for amount in max_amounts_in):
            raise InvalidAmount(f"First deposit requires every amount, got {max_amounts_in}")
        scaled = [token.scale_amount_up(amount) for token, amount in zip(pool.tokens, max_amounts_in)]
        minted = _initial_lp_amount(scaled).value
        if minted == 0 or minted < lp_amount:
            logger.debug("amm_deposit_slippage", lp_amount=lp_amount, minted=minted)
            raise SlippageExceeded(f"First deposit mints {minted}, below requested {lp_amount}")
        new_balances = [bal.add(amount) for bal, amount in zip(balances, scaled)]
        return list(max_amounts_in), minted, new_balances

    _require_amount("lp_amount", lp_amount)
    required = stable_math.calc_tokens_in_proportional(balances, Fp(lp_amount), Fp(lp_supply))

    amounts_in = []
    new_balances = []
    for token, bal, scaled_amount, max_amount in zip(pool.tokens, balances, required, max_amounts_in):
        raw, scaled_in = _paid_in(token, scaled_amount)
        if raw > max_amount:
            logger.debug("amm_deposit_slippage", mint=token.mint, amount_in=raw, max_amount_in=max_amount)
            raise SlippageExceeded(f"Deposit of {token.mint} needs {raw}, above max {max_amount}")
        amounts_in.append(raw)
        new_balances.append(bal.add(scaled_in))
    return amounts_in, lp_amount, new_balances


def _proportional_withdraw(
    pool: WeightedPool | StablePool,
    lp_supply: int,
    lp_amount: int,
    min_amounts_out: list[int],
) -> tuple[list[int], list[Fp]]:
    """Raw amounts out and new balances for a proportional withdrawal."""
    _require_per_token(pool, "min_amounts_out", min_amounts_out)
    _require_amount("lp_amount", lp_amount)
    balances = pool.balances()
    amounts = stable_math.calc_tokens_out_proportional(balances, Fp(lp_amount), Fp(lp_supply))

    amounts_out = []
    new_balances = []
    for token, bal, scaled_amount, min_amount in zip(pool.tokens, balances, amounts, min_amounts_out):
        raw, scaled_out = _paid_out(token, scaled_amount)
        if raw < min_amount:
            logger.debug("amm_withdraw_slippage", mint=token.mint, amount_out=raw, min_amount_out=min_amount)
            raise SlippageExceeded(f"Withdrawal of {token.mint} pays {raw}, below min {min_amount}")
        amounts_out.append(raw)
        new_balances.append(bal.sub(scaled_out))
    return amounts_out, new_balances


# =============================================================================
# AMM Classes
# =============================================================================


class WeightedPoolAMM:
    """Swaps and liquidity operations on weighted pools.

    The swap fee is taken from the input of exact-input swaps and added on
    top of the input of exact-output swaps.
    """

    @staticmethod
    def _refreshed_invariant(balances: list[Fp], weights: list[Fp]) -> Fp:
        if any(bal.value == 0 for bal in balances):
            return Fp(0)
        return weighted_math.calc_invariant(balances, weights)

    def swap(
        self,
        pool: WeightedPool,
        mint_in: str,
        mint_out: str,
        amount_in: int,
        min_amount_out: int = 0,
    ) -> SwapResult:
        """Swap an exact input amount.

        Args:
            pool: The weighted pool
            mint_in: Input token mint
            mint_out: Output token mint
            amount_in: Raw input amount
            min_amount_out: Minimum raw output accepted

        Returns:
            SwapResult with the raw output and the updated pool

        Raises:
            PoolInactive: If the pool is inactive
            TokenNotFound: If a mint is not in the pool
            InvalidAmount: If amount_in is zero or the swap pays nothing
            SlippageExceeded: If the output is below min_amount_out
        """
        _require_active(pool, "swap")
        index_in, index_out = _swap_indices(pool, mint_in, mint_out)
        _require_amount("amount_in", amount_in)
        token_in, token_out = pool.tokens[index_in], pool.tokens[index_out]

        try:
            balances = pool.balances()
            weights = pool.weights()
            amount_in_scaled = token_in.scale_amount_up(amount_in)
            amount_in_after_fee = subtract_swap_fee_amount(amount_in_scaled, pool.swap_fee)

            amount_out_scaled = weighted_math.calc_out_given_in(
                balance_in=balances[index_in],
                weight_in=weights[index_in],
                balance_out=balances[index_out],
                weight_out=weights[index_out],
                amount_in=amount_in_after_fee,
            )
            amount_out, scaled_out = _paid_out(token_out, amount_out_scaled)
            if amount_out == 0:
                raise InvalidAmount(f"amount_in {amount_in} is too small to produce any output")

            balances[index_in] = balances[index_in].add(amount_in_scaled)
            balances[index_out] = balances[index_out].sub(scaled_out)
            new_pool = pool.with_balances(balances)
        except PoolMathError as e:
            logger.debug(
                "weighted_amm_swap_failed",
                mint_in=mint_in,
                mint_out=mint_out,
                amount_in=amount_in,
                error=str(e),
            )
            raise

        if amount_out < min_amount_out:
            logger.debug(
                "weighted_amm_swap_slippage",
                amount_out=amount_out,
                min_amount_out=min_amount_out,
            )
            raise SlippageExceeded(f"amount_out {amount_out} is below min_amount_out {min_amount_out}")

        return SwapResult(
            amount_in=amount_in,
            amount_out=amount_out,
            mint_in=mint_in,
            mint_out=mint_out,
            pool=new_pool,
        )

    def swap_exact_out(
        self,
        pool: WeightedPool,
        mint_in: str,
        mint_out: str,
        amount_out: int,
        max_amount_in: int,
    ) -> SwapResult:
        """Swap for an exact output amount.

        The input is computed before the fee, grossed up by the fee
        complement, then scaled down rounding up.

        Raises:
            SlippageExceeded: If the required input is above max_amount_in
        """
        _require_active(pool, "swap")
        index_in, index_out = _swap_indices(pool, mint_in, mint_out)
        _require_amount("amount_out", amount_out)
        token_in, token_out = pool.tokens[index_in], pool.tokens[index_out]

        try:
            balances = pool.balances()
            weights = pool.weights()
            amount_out_scaled = token_out.scale_amount_up(amount_out)

            amount_in_before_fee = weighted_math.calc_in_given_out(
                balance_in=balances[index_in],
                weight_in=weights[index_in],
                balance_out=balances[index_out],
                weight_out=weights[index_out],
                amount_out=amount_out_scaled,
            )
            amount_in_scaled = add_swap_fee_amount(amount_in_before_fee, pool.swap_fee)
            amount_in, scaled_in = _paid_in(token_in, amount_in_scaled)

            balances[index_in] = balances[index_in].add(scaled_in)
            balances[index_out] = balances[index_out].sub(amount_out_scaled)
            new_pool = pool.with_balances(balances)
        except PoolMathError as e:
            logger.debug(
                "weighted_amm_exact_output_failed",
                mint_in=mint_in,
                mint_out=mint_out,
                amount_out=amount_out,
                error=str(e),
            )
            raise

        if amount_in > max_amount_in:
            logger.debug(
                "weighted_amm_exact_output_slippage",
                amount_in=amount_in,
                max_amount_in=max_amount_in,
            )
            raise SlippageExceeded(f"amount_in {amount_in} is above max_amount_in {max_amount_in}")

        return SwapResult(
            amount_in=amount_in,
            amount_out=amount_out,
            mint_in=mint_in,
            mint_out=mint_out,
            pool=new_pool,
        )

    def deposit(
        self,
        pool: WeightedPool,
        lp_supply: int,
        lp_amount: int,
        max_amounts_in: list[int],
    ) -> LiquidityResult:
        """Deposit every token in proportion to the pool to mint lp_amount.

        On the first deposit (lp_supply == 0) the amounts are taken as given
        and the minted amount is the n-th root of their product.
        """
        _require_active(pool, "deposit")
        amounts_in, minted, balances = _proportional_deposit(pool, lp_supply, lp_amount, max_amounts_in)
        invariant = self._refreshed_invariant(balances, pool.weights())
        return LiquidityResult(
            amounts=tuple(amounts_in),
            lp_amount=minted,
            pool=pool.with_balances(balances, invariant),
        )

    def deposit_unbalanced(
        self,
        pool: WeightedPool,
        lp_supply: int,
        amounts_in: list[int],
        min_lp_out: int = 0,
    ) -> LiquidityResult:
        """Deposit arbitrary amounts; the part above the pool ratio pays the swap fee.

        Raises:
            InvalidAmount: If the pool has no liquidity yet or nothing is minted
            SlippageExceeded: If fewer than min_lp_out LP tokens are minted
        """
        _require_active(pool, "deposit")
        _require_per_token(pool, "amounts_in", amounts_in)
        _require_amount("lp_supply", lp_supply)

        balances = pool.balances()
        weights = pool.weights()
        scaled = [token.scale_amount_up(amount) for token, amount in zip(pool.tokens, amounts_in)]

        amounts_after_fee = weighted_math.calc_amounts_in_after_excess_fee(
            balances, scaled, validate_swap_fee(pool.swap_fee)
        )
        invariant_before = weighted_math.calc_invariant(balances, weights)
        invariant_after = weighted_math.calc_invariant(
            [bal.add(amount) for bal, amount in zip(balances, amounts_after_fee)], weights
        )
        lp_minted = weighted_math.calc_lp_to_mint(
            Fp(lp_supply), invariant_after, invariant_before, Fp.from_int(1)
        ).value
        if lp_minted == 0:
            raise InvalidAmount(f"Deposit of {amounts_in} mints no LP tokens")
        if lp_minted < min_lp_out:
            logger.debug("weighted_amm_deposit_slippage", lp_minted=lp_minted, min_lp_out=min_lp_out)
            raise SlippageExceeded(f"LP minted {lp_minted} is below min_lp_out {min_lp_out}")

        new_balances = [bal.add(amount) for bal, amount in zip(balances, scaled)]
        invariant = self._refreshed_invariant(new_balances, weights)
        return LiquidityResult(
            amounts=tuple(amounts_in),
            lp_amount=lp_minted,
            pool=pool.with_balances(new_balances, invariant),
        )

    def withdraw(
        self,
        pool: WeightedPool,
        lp_supply: int,
        lp_amount: int,
        min_amounts_out: list[int],
    ) -> LiquidityResult:
        """Burn lp_amount for a proportional share of every token."""
        _require_active(pool, "withdraw")
        amounts_out, balances = _proportional_withdraw(pool, lp_supply, lp_amount, min_amounts_out)
        invariant = self._refreshed_invariant(balances, pool.weights())
        return LiquidityResult(
            amounts=tuple(amounts_out),
            lp_amount=lp_amount,
            pool=pool.with_balances(balances, invariant),
        )


class StablePoolAMM:
    """Swaps and liquidity operations on stable pools.

    The swap fee is taken from the output. Swaps, unbalanced deposits and
    single-token withdrawals accept an optional ``now`` timestamp; when given,
    the ramped amplification at that time is used instead of the stored one.
    """

    @staticmethod
    def _amp(pool: StablePool, now: int | None) -> int:
        return pool.amp if now is None else pool.current_amp(now)

    def swap(
        self,
        pool: StablePool,
        mint_in: str,
        mint_out: str,
        amount_in: int,
        min_amount_out: int = 0,
        now: int | None = None,
    ) -> SwapResult:
        """Swap an exact input amount.

        Raises:
            PoolInactive: If the pool is inactive
            TokenNotFound: If a mint is not in the pool
            InvalidAmount: If amount_in is zero or the swap pays nothing
            SlippageExceeded: If the output is below min_amount_out
        """
        _require_active(pool, "swap")
        index_in, index_out = _swap_indices(pool, mint_in, mint_out)
        _require_amount("amount_in", amount_in)
        token_in, token_out = pool.tokens[index_in], pool.tokens[index_out]

        try:
            balances = pool.balances()
            amount_in_scaled = token_in.scale_amount_up(amount_in)

            amount_out_before_fee = stable_math.calc_out_given_in(
                amp=self._amp(pool, now),
                balances=balances,
                token_index_in=index_in,
                token_index_out=index_out,
                amount_in=amount_in_scaled,
            )
            amount_out_scaled = subtract_swap_fee_amount(amount_out_before_fee, pool.swap_fee)
            amount_out, scaled_out = _paid_out(token_out, amount_out_scaled)
            if amount_out == 0:
                raise InvalidAmount(f"amount_in {amount_in} is too small to produce any output")

            balances[index_in] = balances[index_in].add(amount_in_scaled)
            balances[index_out] = balances[index_out].sub(scaled_out)
            new_pool = pool.with_balances(balances)
        except PoolMathError as e:
            logger.debug(
                "stable_amm_swap_failed",
                mint_in=mint_in,
                mint_out=mint_out,
                amount_in=amount_in,
                error=str(e),
            )
            raise

        if amount_out < min_amount_out:
            logger.debug(
                "stable_amm_swap_slippage",
                amount_out=amount_out,
                min_amount_out=min_amount_out,
            )
            raise SlippageExceeded(f"amount_out {amount_out} is below min_amount_out {min_amount_out}")

        return SwapResult(
            amount_in=amount_in,
            amount_out=amount_out,
            mint_in=mint_in,
            mint_out=mint_out,
            pool=new_pool,
        )

    def swap_exact_out(
        self,
        pool: StablePool,
        mint_in: str,
        mint_out: str,
        amount_out: int,
        max_amount_in: int,
        now: int | None = None,
    ) -> SwapResult:
        """Swap for an exact output amount.

        The requested output is grossed up by the fee complement so that the
        fee taken from it leaves the trader at least ``amount_out``.
        """
        _require_active(pool, "swap")
        index_in, index_out = _swap_indices(pool, mint_in, mint_out)
        _require_amount("amount_out", amount_out)
        token_in, token_out = pool.tokens[index_in], pool.tokens[index_out]

        try:
            balances = pool.balances()
            amount_out_scaled = token_out.scale_amount_up(amount_out)
            amount_out_with_fee = add_swap_fee_amount(amount_out_scaled, pool.swap_fee)

            amount_in_scaled = stable_math.calc_in_given_out(
                amp=self._amp(pool, now),
                balances=balances,
                token_index_in=index_in,
                token_index_out=index_out,
                amount_out=amount_out_with_fee,
            )
            amount_in, scaled_in = _paid_in(token_in, amount_in_scaled)

            balances[index_in] = balances[index_in].add(scaled_in)
            balances[index_out] = balances[index_out].sub(amount_out_scaled)
            new_pool = pool.with_balances(balances)
        except PoolMathError as e:
            logger.debug(
                "stable_amm_exact_output_failed",
                mint_in=mint_in,
                mint_out=mint_out,
                amount_out=amount_out,
                error=str(e),
            )
            raise

        if amount_in > max_amount_in:
            logger.debug(
                "stable_amm_exact_output_slippage",
                amount_in=amount_in,
                max_amount_in=max_amount_in,
            )
            raise SlippageExceeded(f"amount_in {amount_in} is above max_amount_in {max_amount_in}")

        return SwapResult(
            amount_in=amount_in,
            amount_out=amount_out,
            mint_in=mint_in,
            mint_out=mint_out,
            pool=new_pool,
        )

    def deposit(
        self,
        pool: StablePool,
        lp_supply: int,
        lp_amount: int,
        max_amounts_in: list[int],
    ) -> LiquidityResult:
        """Deposit every token in proportion to the pool to mint lp_amount."""
        _require_active(pool, "deposit")
        amounts_in, minted, balances = _proportional_deposit(pool, lp_supply, lp_amount, max_amounts_in)
        return LiquidityResult(
            amounts=tuple(amounts_in),
            lp_amount=minted,
            pool=pool.with_balances(balances),
        )

    def deposit_unbalanced(
        self,
        pool: StablePool,
        lp_supply: int,
        amounts_in: list[int],
        min_lp_out: int = 0,
        now: int | None = None,
    ) -> LiquidityResult:
        """Deposit arbitrary amounts; the part above the ideal ratio pays the swap fee.

        Raises:
            InvalidAmount: If the pool has no liquidity yet or nothing is minted
            SlippageExceeded: If fewer than min_lp_out LP tokens are minted
        """
        _require_active(pool, "deposit")
        _require_per_token(pool, "amounts_in", amounts_in)
        _require_amount("lp_supply", lp_supply)

        amp = self._amp(pool, now)
        balances = pool.balances()
        scaled = [token.scale_amount_up(amount) for token, amount in zip(pool.tokens, amounts_in)]

        lp_minted = stable_math.calc_lp_tokens_for_deposit_with_fee(
            amp=amp,
            balances=balances,
            amounts_in=scaled,
            lp_supply=Fp(lp_supply),
            current_invariant=stable_math.calc_invariant(amp, balances),
            swap_fee=validate_swap_fee(pool.swap_fee),
        ).value
        if lp_minted == 0:
            raise InvalidAmount(f"Deposit of {amounts_in} mints no LP tokens")
        if lp_minted < min_lp_out:
            logger.debug("stable_amm_deposit_slippage", lp_minted=lp_minted, min_lp_out=min_lp_out)
            raise SlippageExceeded(f"LP minted {lp_minted} is below min_lp_out {min_lp_out}")

        new_balances = [bal.add(amount) for bal, amount in zip(balances, scaled)]
        return LiquidityResult(
            amounts=tuple(amounts_in),
            lp_amount=lp_minted,
            pool=pool.with_balances(new_balances),
        )

    def withdraw(
        self,
        pool: StablePool,
        lp_supply: int,
        lp_amount: int,
        min_amounts_out: list[int],
    ) -> LiquidityResult:
        """Burn lp_amount for a proportional share of every token."""
        _require_active(pool, "withdraw")
        amounts_out, balances = _proportional_withdraw(pool, lp_supply, lp_amount, min_amounts_out)
        return LiquidityResult(
            amounts=tuple(amounts_out),
            lp_amount=lp_amount,
            pool=pool.with_balances(balances),
        )

    def withdraw_one_token(
        self,
        pool: StablePool,
        lp_supply: int,
        mint_out: str,
        lp_amount: int,
        min_amount_out: int = 0,
        now: int | None = None,
    ) -> LiquidityResult:
        """Burn lp_amount for a single token; the implicit swap pays the swap fee.

        Raises:
            TokenNotFound: If mint_out is not in the pool
            InvalidAmount: If lp_amount is zero or not below lp_supply
            SlippageExceeded: If the output is below min_amount_out
        """
        _require_active(pool, "withdraw")
        index_out = pool.token_index(mint_out)
        _require_amount("lp_amount", lp_amount)

        amp = self._amp(pool, now)
        balances = pool.balances()
        amount_out_scaled = stable_math.calc_token_out_for_lp_burn(
            amp=amp,
            balances=balances,
            token_index=index_out,
            lp_amount_in=Fp(lp_amount),
            lp_supply=Fp(lp_supply),
            current_invariant=stable_math.calc_invariant(amp, balances),
            swap_fee=validate_swap_fee(pool.swap_fee),
        )
        token_out = pool.tokens[index_out]
        amount_out, scaled_out = _paid_out(token_out, amount_out_scaled)
        if amount_out < min_amount_out:
            logger.debug(
                "stable_amm_withdraw_one_slippage",
                mint_out=mint_out,
                amount_out=amount_out,
                min_amount_out=min_amount_out,
            )
            raise SlippageExceeded(f"amount_out {amount_out} is below min_amount_out {min_amount_out}")

        balances[index_out] = balances[index_out].sub(scaled_out)
        amounts = [0] * len(pool.tokens)
        amounts[index_out] = amount_out
        return LiquidityResult(
            amounts=tuple(amounts),
            lp_amount=lp_amount,
            pool=pool.with_balances(balances),
        )
