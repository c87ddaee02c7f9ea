"""Tests for the pool accounting layer (WeightedPoolAMM and StablePoolAMM).

This module tests:
- Exact-input and exact-output swaps, including fee placement
- Proportional, unbalanced and single-token liquidity operations
- Slippage bounds and inactive pools
"""

import pytest
from structlog.testing import capture_logs

from poolmath.amm import LiquidityResult, StablePoolAMM, SwapResult, WeightedPoolAMM
from poolmath.amm.pools import StablePool, WeightedPool
from poolmath.errors import (
    InvalidAmount,
    PoolInactive,
    SlippageExceeded,
    TokenNotFound,
)
from tests.helpers import (
    SOL,
    STABLE_AMP,
    STABLE_BALANCES,
    USDC,
    USDT,
    make_stable_pool,
    make_token,
    make_weighted_pool,
)


def _balances(pool: WeightedPool | StablePool) -> list[int]:
    return [token.balance for token in pool.tokens]


class TestWeightedSwap:
    """Tests for WeightedPoolAMM.swap."""

    def test_swap_takes_fee_on_input(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        """1e9 in pays 0.3%, the remaining 997e6 trades on the 50/50 curve."""
        result = weighted_amm.swap(weighted_pool, SOL, USDC, 10**9)

        assert isinstance(result, SwapResult)
        assert result.amount_in == 10**9
        assert result.amount_out == 1_992_012_000
        assert result.mint_in == SOL
        assert result.mint_out == USDC

    def test_swap_updates_balances_with_full_input(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        """The fee stays in the pool."""
        result = weighted_amm.swap(weighted_pool, SOL, USDC, 10**9)
        assert _balances(result.pool) == [1_001_000_000_000, 1_998_007_988_000]
        # input pool is unchanged
        assert _balances(weighted_pool) == [10**12, 2 * 10**12]

    def test_swap_reverse_direction(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        result = weighted_amm.swap(weighted_pool, USDC, SOL, 2 * 10**9)
        # about half of the input, minus fee and price impact
        assert 990_000_000 < result.amount_out < 10**9

    def test_min_amount_out_met(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        result = weighted_amm.swap(weighted_pool, SOL, USDC, 10**9, min_amount_out=1_992_012_000)
        assert result.amount_out == 1_992_012_000

    def test_slippage_exceeded(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        with pytest.raises(SlippageExceeded):
            weighted_amm.swap(weighted_pool, SOL, USDC, 10**9, min_amount_out=1_992_012_001)

    def test_inactive_pool_raises(self, weighted_amm: WeightedPoolAMM) -> None:
        pool = make_weighted_pool(is_active=False)
        with capture_logs() as logs:
            with pytest.raises(PoolInactive):
                weighted_amm.swap(pool, SOL, USDC, 10**9)
        assert logs[0]["event"] == "amm_pool_inactive"

    def test_same_mint_raises(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        with pytest.raises(InvalidAmount):
            weighted_amm.swap(weighted_pool, SOL, SOL, 10**9)

    def test_unknown_mint_raises(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        with pytest.raises(TokenNotFound):
            weighted_amm.swap(weighted_pool, USDT, USDC, 10**9)

    def test_zero_amount_raises(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        with pytest.raises(InvalidAmount):
            weighted_amm.swap(weighted_pool, SOL, USDC, 0)

    def test_dust_amount_raises(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        """An input that rounds to zero output is rejected and logged."""
        with capture_logs() as logs:
            with pytest.raises(InvalidAmount):
                weighted_amm.swap(weighted_pool, SOL, USDC, 1)
        assert any(log["event"] == "weighted_amm_swap_failed" for log in logs)


class TestWeightedSwapExactOut:
    """Tests for WeightedPoolAMM.swap_exact_out."""

    def test_exact_out_adds_fee_to_input(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        """500251000 before fee, divided by 0.997 and rounded up."""
        result = weighted_amm.swap_exact_out(weighted_pool, SOL, USDC, 10**9, max_amount_in=10**10)
        assert result.amount_out == 10**9
        assert result.amount_in == 501_756_269
        assert _balances(result.pool) == [10**12 + 501_756_269, 2 * 10**12 - 10**9]

    def test_max_amount_in_exceeded(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        with pytest.raises(SlippageExceeded):
            weighted_amm.swap_exact_out(weighted_pool, SOL, USDC, 10**9, max_amount_in=501_756_268)

    def test_amount_out_above_balance_raises(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        with pytest.raises(InvalidAmount):
            weighted_amm.swap_exact_out(weighted_pool, SOL, USDC, 2 * 10**12, max_amount_in=10**18)


class TestWeightedLiquidity:
    """Tests for weighted deposits and withdrawals."""

    def test_first_deposit_mints_geometric_mean(self, weighted_amm: WeightedPoolAMM) -> None:
        pool = make_weighted_pool(balances=[0, 0])
        result = weighted_amm.deposit(pool, lp_supply=0, lp_amount=0, max_amounts_in=[10**12, 4 * 10**12])

        assert isinstance(result, LiquidityResult)
        assert result.lp_amount == 2 * 10**12
        assert result.amounts == (10**12, 4 * 10**12)
        assert _balances(result.pool) == [10**12, 4 * 10**12]
        # cached invariant is refreshed (powers round down)
        assert 0 <= 2 * 10**12 - result.pool.invariant <= 2 * 10**4

    def test_first_deposit_below_requested_lp_raises(self, weighted_amm: WeightedPoolAMM) -> None:
        pool = make_weighted_pool(balances=[0, 0])
        with pytest.raises(SlippageExceeded):
            weighted_amm.deposit(
                pool, lp_supply=0, lp_amount=2 * 10**12 + 1, max_amounts_in=[10**12, 4 * 10**12]
            )

    def test_first_deposit_requires_every_token(self, weighted_amm: WeightedPoolAMM) -> None:
        pool = make_weighted_pool(balances=[0, 0])
        with pytest.raises(InvalidAmount):
            weighted_amm.deposit(pool, lp_supply=0, lp_amount=0, max_amounts_in=[10**12, 0])

    def test_proportional_deposit(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        result = weighted_amm.deposit(
            weighted_pool, lp_supply=10**12, lp_amount=10**11, max_amounts_in=[10**12, 10**12]
        )
        assert result.amounts == (10**11, 2 * 10**11)
        assert result.lp_amount == 10**11
        assert _balances(result.pool) == [11 * 10**11, 22 * 10**11]

    def test_proportional_deposit_above_max_raises(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        with pytest.raises(SlippageExceeded):
            weighted_amm.deposit(
                weighted_pool, lp_supply=10**12, lp_amount=10**11, max_amounts_in=[10**11, 2 * 10**11 - 1]
            )

    def test_deposit_wrong_length_raises(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        with pytest.raises(InvalidAmount):
            weighted_amm.deposit(weighted_pool, lp_supply=10**12, lp_amount=10**11, max_amounts_in=[10**12])

    def test_unbalanced_deposit(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        """Single-sided 1e11 pays the fee on all of it: lp ~ supply * (sqrt(1.0997) - 1)."""
        result = weighted_amm.deposit_unbalanced(weighted_pool, lp_supply=10**12, amounts_in=[10**11, 0])
        assert 48_000_000_000 < result.lp_amount < 49_000_000_000
        assert result.amounts == (10**11, 0)
        assert _balances(result.pool) == [11 * 10**11, 2 * 10**12]
        assert result.pool.invariant > 0

    def test_unbalanced_deposit_min_lp_out(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        with pytest.raises(SlippageExceeded):
            weighted_amm.deposit_unbalanced(
                weighted_pool, lp_supply=10**12, amounts_in=[10**11, 0], min_lp_out=49_000_000_000
            )

    def test_unbalanced_deposit_empty_pool_raises(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        with pytest.raises(InvalidAmount):
            weighted_amm.deposit_unbalanced(weighted_pool, lp_supply=0, amounts_in=[10**11, 0])

    def test_withdraw(self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool) -> None:
        result = weighted_amm.withdraw(
            weighted_pool, lp_supply=3 * 10**12, lp_amount=3 * 10**11, min_amounts_out=[0, 0]
        )
        assert result.amounts == (10**11, 2 * 10**11)
        assert result.lp_amount == 3 * 10**11
        assert _balances(result.pool) == [9 * 10**11, 18 * 10**11]

    def test_withdraw_below_min_raises(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        with pytest.raises(SlippageExceeded):
            weighted_amm.withdraw(
                weighted_pool, lp_supply=3 * 10**12, lp_amount=3 * 10**11, min_amounts_out=[10**11 + 1, 0]
            )

    def test_full_withdraw_empties_pool(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        result = weighted_amm.withdraw(
            weighted_pool, lp_supply=10**12, lp_amount=10**12, min_amounts_out=[0, 0]
        )
        assert _balances(result.pool) == [0, 0]
        assert result.pool.invariant == 0

    def test_withdraw_more_than_supply_raises(
        self, weighted_amm: WeightedPoolAMM, weighted_pool: WeightedPool
    ) -> None:
        with pytest.raises(InvalidAmount):
            weighted_amm.withdraw(
                weighted_pool, lp_supply=10**12, lp_amount=10**12 + 1, min_amounts_out=[0, 0]
            )

    def test_inactive_pool_rejects_liquidity(self, weighted_amm: WeightedPoolAMM) -> None:
        pool = make_weighted_pool(is_active=False)
        with pytest.raises(PoolInactive):
            weighted_amm.deposit(pool, lp_supply=10**12, lp_amount=10**11, max_amounts_in=[10**12, 10**12])
        with pytest.raises(PoolInactive):
            weighted_amm.withdraw(pool, lp_supply=10**12, lp_amount=10**11, min_amounts_out=[0, 0])


class TestWeightedScaling:
    """Raw amounts of tokens with fewer decimals are scaled to the pool base."""

    def test_swap_scales_in_and_out(self, weighted_amm: WeightedPoolAMM) -> None:
        tokens = (
            make_token(SOL, balance=10**12, weight=500_000_000, max_decimals=9),
            make_token(USDC, balance=2 * 10**12, weight=500_000_000, max_decimals=9),
        )
        pool = WeightedPool(tokens=tokens, swap_fee=3_000_000)

        # 1 SOL in; USDC comes back in its 6 native decimals
        result = weighted_amm.swap(pool, SOL, USDC, 10**9)
        assert result.amount_out == 1_992_012
        assert _balances(result.pool) == [1_001_000_000_000, 2 * 10**12 - 1_992_012_000]


class TestStableSwap:
    """Tests for StablePoolAMM.swap."""

    def test_swap_takes_fee_on_output(self, stable_amm: StablePoolAMM, stable_pool: StablePool) -> None:
        """999845351779 before fee, minus 0.3% rounded in the pool's favor."""
        result = stable_amm.swap(stable_pool, USDC, USDT, 10**12)
        assert result.amount_out == 996_845_815_723
        assert _balances(result.pool) == [
            STABLE_BALANCES[0] + 10**12,
            STABLE_BALANCES[1] - 996_845_815_723,
        ]

    def test_swap_without_fee(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool(balances=list(STABLE_BALANCES), swap_fee=0)
        result = stable_amm.swap(pool, USDC, USDT, 10**12)
        assert result.amount_out == 999_845_351_779

    def test_slippage_exceeded(self, stable_amm: StablePoolAMM, stable_pool: StablePool) -> None:
        with pytest.raises(SlippageExceeded):
            stable_amm.swap(stable_pool, USDC, USDT, 10**12, min_amount_out=996_845_815_724)

    def test_inactive_pool_raises(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool(is_active=False)
        with pytest.raises(PoolInactive):
            stable_amm.swap(pool, USDC, USDT, 10**9)

    def test_unknown_mint_raises(self, stable_amm: StablePoolAMM, stable_pool: StablePool) -> None:
        with pytest.raises(TokenNotFound):
            stable_amm.swap(stable_pool, SOL, USDT, 10**9)

    def test_ramp_uses_amp_at_now(self, stable_amm: StablePoolAMM) -> None:
        """At the end of the ramp the target amp applies."""
        pool = make_stable_pool(
            balances=list(STABLE_BALANCES),
            amp=1_000_000,
            amp_target=STABLE_AMP,
            amp_start_ts=0,
            amp_end_ts=100,
            swap_fee=0,
        )
        at_end = stable_amm.swap(pool, USDC, USDT, 10**12, now=100)
        assert at_end.amount_out == 999_845_351_779

        # stored amp (1000) gives a worse price on this imbalanced pool
        at_stored = stable_amm.swap(pool, USDC, USDT, 10**12)
        assert at_stored.amount_out < at_end.amount_out


class TestStableSwapExactOut:
    """Tests for StablePoolAMM.swap_exact_out."""

    def test_exact_out_without_fee(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool(balances=list(STABLE_BALANCES), swap_fee=0)
        result = stable_amm.swap_exact_out(pool, USDC, USDT, 999_845, max_amount_in=10**7)
        assert result.amount_in == 1_000_001
        assert _balances(result.pool) == [STABLE_BALANCES[0] + 1_000_001, STABLE_BALANCES[1] - 999_845]

    def test_exact_out_fee_raises_input(self, stable_amm: StablePoolAMM, stable_pool: StablePool) -> None:
        result = stable_amm.swap_exact_out(stable_pool, USDC, USDT, 999_845, max_amount_in=10**7)
        assert result.amount_in > 1_000_001
        assert result.amount_out == 999_845

    def test_max_amount_in_exceeded(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool(balances=list(STABLE_BALANCES), swap_fee=0)
        with pytest.raises(SlippageExceeded):
            stable_amm.swap_exact_out(pool, USDC, USDT, 999_845, max_amount_in=1_000_000)


class TestStableLiquidity:
    """Tests for stable deposits and withdrawals."""

    def test_first_deposit(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool(balances=[0, 0])
        result = stable_amm.deposit(pool, lp_supply=0, lp_amount=0, max_amounts_in=[10**12, 10**12])
        assert result.lp_amount == 10**12
        assert _balances(result.pool) == [10**12, 10**12]

    def test_proportional_deposit(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool()
        result = stable_amm.deposit(
            pool, lp_supply=2 * 10**15, lp_amount=2 * 10**12, max_amounts_in=[10**13, 10**13]
        )
        assert result.amounts == (10**12, 10**12)
        assert _balances(result.pool) == [10**15 + 10**12, 10**15 + 10**12]

    def test_unbalanced_balanced_amounts(self, stable_amm: StablePoolAMM) -> None:
        """Amounts in the pool's ratio pay no fee and mint their share of D."""
        pool = make_stable_pool()
        result = stable_amm.deposit_unbalanced(pool, lp_supply=2 * 10**15, amounts_in=[10**12, 10**12])
        assert abs(result.lp_amount - 2 * 10**12) <= 10**6

    def test_unbalanced_single_sided(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool()
        result = stable_amm.deposit_unbalanced(pool, lp_supply=2 * 10**15, amounts_in=[10**12, 0])
        assert 990_000_000_000 < result.lp_amount < 10**12
        assert _balances(result.pool) == [10**15 + 10**12, 10**15]

    def test_unbalanced_min_lp_out(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool()
        with pytest.raises(SlippageExceeded):
            stable_amm.deposit_unbalanced(
                pool, lp_supply=2 * 10**15, amounts_in=[10**12, 0], min_lp_out=10**12
            )

    def test_withdraw(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool()
        result = stable_amm.withdraw(pool, lp_supply=2 * 10**15, lp_amount=2 * 10**13, min_amounts_out=[0, 0])
        assert result.amounts == (10**13, 10**13)
        assert _balances(result.pool) == [99 * 10**13, 99 * 10**13]

    def test_withdraw_one_token(self, stable_amm: StablePoolAMM) -> None:
        """Burning 1% of supply for one token pays a little less than 1% of D."""
        pool = make_stable_pool()
        result = stable_amm.withdraw_one_token(
            pool, lp_supply=2 * 10**15, mint_out=USDT, lp_amount=2 * 10**13
        )

        assert result.amounts[0] == 0
        assert 19_900_000_000_000 < result.amounts[1] < 2 * 10**13
        assert result.lp_amount == 2 * 10**13
        assert _balances(result.pool) == [10**15, 10**15 - result.amounts[1]]

    def test_withdraw_one_token_min_amount_out(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool()
        with pytest.raises(SlippageExceeded):
            stable_amm.withdraw_one_token(
                pool, lp_supply=2 * 10**15, mint_out=USDT, lp_amount=2 * 10**13, min_amount_out=2 * 10**13
            )

    def test_withdraw_one_token_whole_supply_raises(self, stable_amm: StablePoolAMM) -> None:
        pool = make_stable_pool()
        with pytest.raises(InvalidAmount):
            stable_amm.withdraw_one_token(pool, lp_supply=2 * 10**15, mint_out=USDT, lp_amount=2 * 10**15)

    def test_withdraw_one_token_small_burn(self, stable_amm: StablePoolAMM) -> None:
        """A burn far below the invariant threshold still pays out."""
        pool = make_stable_pool(swap_fee=0)
        result = stable_amm.withdraw_one_token(
            pool, lp_supply=2 * 10**15, mint_out=USDT, lp_amount=1000
        )
        assert result.amounts == (0, 998)
        assert _balances(result.pool) == [10**15, 10**15 - 998]

    def test_withdraw_one_token_dust_burn_raises(self, stable_amm: StablePoolAMM) -> None:
        with pytest.raises(InvalidAmount):
            stable_amm.withdraw_one_token(
                make_stable_pool(swap_fee=0), lp_supply=2 * 10**15, mint_out=USDT, lp_amount=1
            )

    def test_withdraw_one_token_unknown_mint_raises(self, stable_amm: StablePoolAMM) -> None:
        with pytest.raises(TokenNotFound):
            stable_amm.withdraw_one_token(
                make_stable_pool(), lp_supply=2 * 10**15, mint_out=SOL, lp_amount=10
            )
