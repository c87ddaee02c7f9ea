"""Result types returned by the pool accounting layer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .pools import StablePool, WeightedPool


@dataclass(frozen=True)
class SwapResult:
    """Result of a swap through a pool.

    Amounts are raw token amounts (native decimals). ``pool`` is the pool
    value after the swap.
    """

    amount_in: int
    amount_out: int
    mint_in: str
    mint_out: str
    pool: WeightedPool | StablePool


@dataclass(frozen=True)
class LiquidityResult:
    """Result of a deposit or withdrawal.

    ``amounts`` holds the raw amount moved per token in pool order (paid in
    for deposits, paid out for withdrawals). ``lp_amount`` is the LP amount
    minted or burned.
    """

    amounts: tuple[int, ...]
    lp_amount: int
    pool: WeightedPool | StablePool
