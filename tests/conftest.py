"""Pytest configuration and fixtures."""

import pytest

from poolmath.amm import StablePool, StablePoolAMM, WeightedPool, WeightedPoolAMM
from tests.helpers import STABLE_BALANCES, make_stable_pool, make_weighted_pool


@pytest.fixture
def weighted_pool() -> WeightedPool:
    """50/50 weighted pool holding 1000 and 2000 tokens (scaled), 0.3% fee."""
    return make_weighted_pool()


@pytest.fixture
def stable_pool() -> StablePool:
    """Stable pool with amp 5000 and the reference swap balances, 0.3% fee."""
    return make_stable_pool(balances=list(STABLE_BALANCES))


@pytest.fixture
def weighted_amm() -> WeightedPoolAMM:
    """Return a WeightedPoolAMM instance."""
    return WeightedPoolAMM()


@pytest.fixture
def stable_amm() -> StablePoolAMM:
    """Return a StablePoolAMM instance."""
    return StablePoolAMM()
