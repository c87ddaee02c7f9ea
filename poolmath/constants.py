"""Engine constants for weighted and stable pool math.

These are fixed for the engine: changing any of them changes rounding and
convergence behavior, so none of them is runtime configuration.
"""

# Fixed-point unit: 1.0 is represented as 10^9
SCALE = 10**9
ONE = SCALE

# Integer widths used by the checked arithmetic
U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1
U192_MAX = 2**192 - 1
U256_MAX = 2**256 - 1

# Pool shape
MIN_POOL_TOKENS = 2
MAX_POOL_TOKENS = 8

# Stable pool amplification (stored as amp * AMP_PRECISION)
AMP_PRECISION = 1000
MIN_AMP = 1
MAX_AMP = 10_000

# Newton-Raphson bounds for the stable solvers
MAX_LOOP_LIMIT = 256
INVARIANT_THRESHOLD = 100  # raw units
BALANCE_THRESHOLD = 1  # raw units

# Reference input for stable spot prices (1.0 in scaled units)
SPOT_PRICE_REFERENCE_AMOUNT = ONE
