"""Fixed-point invariant math for weighted and stable AMM pools."""

from poolmath.amm import StablePool, StablePoolAMM, WeightedPool, WeightedPoolAMM
from poolmath.arbitrage import ArbitrageOpportunity, detect_arbitrage
from poolmath.math import Fp

__version__ = "0.1.0"
__all__ = [
    "Fp",
    "WeightedPool",
    "StablePool",
    "WeightedPoolAMM",
    "StablePoolAMM",
    "ArbitrageOpportunity",
    "detect_arbitrage",
    "__version__",
]
