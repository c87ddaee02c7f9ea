"""Price comparison between a weighted and a stable pool.

Compares the spot price of the same token pair in both pools and reports an
opportunity when the price gap exceeds the fees charged by both pools by at
least the configured minimum.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

import structlog

from poolmath.amm import stable_math, weighted_math
from poolmath.amm.pools import StablePool, WeightedPool
from poolmath.config import DEFAULT_SCANNER_CONFIG, ScannerConfig

logger = structlog.get_logger()

Direction = Literal["weighted_to_stable", "stable_to_weighted"]


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """A price gap between two pools that is profitable after fees.

    Prices are token 0 of the weighted pool in units of its token 1.
    Percentages are in percent (1 = 1%).
    """

    weighted_price: Decimal
    stable_price: Decimal
    price_diff_percent: Decimal
    total_fees_percent: Decimal
    net_profit_percent: Decimal
    # Buy where the price is low, sell where it is high
    direction: Direction


def _fee_percent(swap_fee: int, config: ScannerConfig) -> Decimal:
    return Decimal(swap_fee) / Decimal(config.fee_scale) * 100


def detect_arbitrage(
    weighted_pool: WeightedPool,
    stable_pool: StablePool,
    config: ScannerConfig = DEFAULT_SCANNER_CONFIG,
    now: int | None = None,
) -> ArbitrageOpportunity | None:
    """Check whether a weighted and a stable pool quote the same pair far enough apart.

    The pair is the weighted pool's first two tokens; both must be in the
    stable pool.

    Args:
        weighted_pool: The weighted pool
        stable_pool: The stable pool
        config: Scanner configuration
        now: Timestamp for the stable pool's ramped amplification (stored
            amp when omitted)

    Returns:
        ArbitrageOpportunity, or None if the net profit is below
        config.min_profit_percent

    Raises:
        TokenNotFound: If the stable pool does not hold the pair
    """
    mint_a = weighted_pool.tokens[0].mint
    mint_b = weighted_pool.tokens[1].mint
    stable_index_a = stable_pool.token_index(mint_a)
    stable_index_b = stable_pool.token_index(mint_b)

    weighted_balances = weighted_pool.balances()
    weights = weighted_pool.weights()
    weighted_price = weighted_math.calc_spot_price(
        weighted_balances[0], weights[0], weighted_balances[1], weights[1]
    ).to_decimal()

    amp = stable_pool.amp if now is None else stable_pool.current_amp(now)
    stable_price = stable_math.calc_spot_price(
        amp, stable_pool.balances(), stable_index_a, stable_index_b
    ).to_decimal()

    lower = min(weighted_price, stable_price)
    if lower == 0:
        logger.debug(
            "arbitrage_zero_price",
            mint_a=mint_a,
            mint_b=mint_b,
            weighted_price=str(weighted_price),
            stable_price=str(stable_price),
        )
        return None

    price_diff_percent = abs(weighted_price - stable_price) / lower * 100
    total_fees_percent = _fee_percent(weighted_pool.swap_fee, config) + _fee_percent(
        stable_pool.swap_fee, config
    )
    net_profit_percent = price_diff_percent - total_fees_percent

    if net_profit_percent < config.min_profit_percent:
        return None

    direction: Direction = (
        "stable_to_weighted" if weighted_price > stable_price else "weighted_to_stable"
    )

    logger.info(
        "arbitrage_opportunity_found",
        mint_a=mint_a,
        mint_b=mint_b,
        weighted_price=str(weighted_price),
        stable_price=str(stable_price),
        net_profit_percent=str(net_profit_percent),
        direction=direction,
    )

    return ArbitrageOpportunity(
        weighted_price=weighted_price,
        stable_price=stable_price,
        price_diff_percent=price_diff_percent,
        total_fees_percent=total_fees_percent,
        net_profit_percent=net_profit_percent,
        direction=direction,
    )
