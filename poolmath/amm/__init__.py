"""Weighted and stable pool implementations.

This package provides the invariant engines for both pool types, the
immutable pool state models and the accounting layer that runs swaps,
deposits and withdrawals against them.

Pool types supported:
- Weighted (constant weighted product)
- Stable (StableSwap / Curve-style, with amplification ramping)
"""

# AMM classes
from .amm import StablePoolAMM, WeightedPoolAMM

# Results
from .base import LiquidityResult, SwapResult

# Pool models
from .pools import PoolToken, StablePool, WeightedPool

# Scaling helpers
from .scaling import (
    add_swap_fee_amount,
    scale_down_down,
    scale_down_up,
    scale_up,
    subtract_swap_fee_amount,
    validate_swap_fee,
)

__all__ = [
    # AMM classes
    "WeightedPoolAMM",
    "StablePoolAMM",
    # Results
    "SwapResult",
    "LiquidityResult",
    # Pool models
    "PoolToken",
    "WeightedPool",
    "StablePool",
    # Scaling helpers
    "scale_up",
    "scale_down_down",
    "scale_down_up",
    "add_swap_fee_amount",
    "subtract_swap_fee_amount",
    "validate_swap_fee",
]
