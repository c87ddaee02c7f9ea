"""Test helpers module for shared test utilities.

This module consolidates common test utilities to reduce duplication:
- constants: Token mints and common pool parameters
- factories: Token and pool factory functions
"""

from tests.helpers.constants import (
    BONK,
    FEE_0_3_PERCENT,
    HALF,
    SOL,
    STABLE_AMP,
    STABLE_BALANCES,
    TOKEN_DECIMALS,
    USDC,
    USDT,
)
from tests.helpers.factories import make_stable_pool, make_token, make_weighted_pool

__all__ = [
    # Constants
    "USDC",
    "USDT",
    "SOL",
    "BONK",
    "TOKEN_DECIMALS",
    "FEE_0_3_PERCENT",
    "HALF",
    "STABLE_AMP",
    "STABLE_BALANCES",
    # Factories
    "make_token",
    "make_weighted_pool",
    "make_stable_pool",
]
