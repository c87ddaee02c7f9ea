"""Configuration for the arbitrage scanner."""

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ScannerConfig:
    """Runtime knobs of the weighted/stable arbitrage scanner.

    Engine constants (SCALE, amp bounds, solver limits) live in
    poolmath.constants and are not configurable.

    Attributes:
        min_profit_percent: Minimum net profit after both pools' fees, in
            percent, for an opportunity to be reported (default: 0.1)
        fee_scale: Unit the pools' swap fees are expressed in (1e9 = 100%)
    """

    min_profit_percent: Decimal = Decimal("0.1")

    # Swap fee unit (1e9)
    fee_scale: int = 10**9


# Default configuration instance
DEFAULT_SCANNER_CONFIG = ScannerConfig()
