"""Pool state models.

Immutable pydantic models for weighted and stable pools. The engine only
reads them; the accounting layer builds a new value with ``with_balances``
after a successful operation.

Balances are stored in the pool's common decimal base (scaled units).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Self

from poolmath.constants import (
    AMP_PRECISION,
    MAX_AMP,
    MAX_POOL_TOKENS,
    MIN_AMP,
    MIN_POOL_TOKENS,
    ONE,
    U64_MAX,
)
from poolmath.errors import AmpOutOfRange, InvalidAmount, TokenNotFound
from poolmath.math.fixed_point import Fp
from poolmath.safe_int import U64

from .scaling import scale_down_down, scale_down_up, scale_up


class PoolToken(BaseModel):
    """A token held by a pool.

    Attributes:
        mint: Token mint identity
        token_account: Custody account holding the pool's tokens
        decimals: Native decimals of the token
        scaling_factor: 10^(max decimals in pool - decimals)
        balance: Balance in scaled units
        weight: Normalized weight as a fraction of ONE (weighted pools only)
    """

    model_config = ConfigDict(frozen=True)

    mint: str = Field(min_length=1)
    token_account: str = Field(min_length=1)
    decimals: int = Field(ge=0, le=255)
    scaling_factor: int = Field(ge=1)
    balance: int = Field(default=0, ge=0, le=U64_MAX)
    weight: int = Field(default=0, ge=0, le=ONE)

    @classmethod
    def create(
        cls,
        mint: str,
        token_account: str,
        decimals: int,
        max_decimals: int,
        balance: int = 0,
        weight: int = 0,
    ) -> PoolToken:
        """Create a token, deriving its scaling factor from the pool's max decimals."""
        if decimals > max_decimals:
            raise InvalidAmount(f"decimals {decimals} exceed pool max decimals {max_decimals}")
        return cls(
            mint=mint,
            token_account=token_account,
            decimals=decimals,
            scaling_factor=10 ** (max_decimals - decimals),
            balance=balance,
            weight=weight,
        )

    def scale_amount_up(self, raw_amount: int) -> Fp:
        """Convert a raw token amount into scaled units."""
        return scale_up(raw_amount, self.scaling_factor)

    def scale_amount_down(self, scaled_amount: Fp, *, round_up: bool = False) -> int:
        """Convert scaled units back into a raw token amount."""
        if round_up:
            return scale_down_up(scaled_amount, self.scaling_factor)
        return scale_down_down(scaled_amount, self.scaling_factor)


class _Pool(BaseModel):
    """Fields and helpers shared by both pool types."""

    model_config = ConfigDict(frozen=True)

    tokens: tuple[PoolToken, ...] = Field(min_length=MIN_POOL_TOKENS, max_length=MAX_POOL_TOKENS)
    swap_fee: int = Field(ge=0, lt=ONE)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_unique_mints(self) -> Self:
        mints = [token.mint for token in self.tokens]
        if len(set(mints)) != len(mints):
            raise ValueError(f"Pool tokens must have distinct mints, got {mints}")
        return self

    def get_token_index(self, mint: str) -> int | None:
        """Index of a mint in the pool, or None."""
        for i, token in enumerate(self.tokens):
            if token.mint == mint:
                return i
        return None

    def token_index(self, mint: str) -> int:
        """Index of a mint in the pool.

        Raises:
            TokenNotFound: If the mint is not in the pool
        """
        index = self.get_token_index(mint)
        if index is None:
            raise TokenNotFound(f"Mint {mint} is not part of the pool")
        return index

    def balances(self) -> list[Fp]:
        """Scaled balances in token order."""
        return [Fp(token.balance) for token in self.tokens]

    def _tokens_with_balances(self, balances: list[Fp]) -> tuple[PoolToken, ...]:
        if len(balances) != len(self.tokens):
            raise InvalidAmount(
                f"Expected {len(self.tokens)} balances, got {len(balances)}"
            )
        tokens = []
        for token, balance in zip(self.tokens, balances):
            # raises MathOverflow above u64
            tokens.append(token.model_copy(update={"balance": U64(balance.value).value}))
        return tuple(tokens)


class WeightedPool(_Pool):
    """Constant-weighted-product pool.

    Attributes:
        tokens: 2-8 tokens; weights each in (0, ONE) and summing to ONE
        swap_fee: Fee as a fraction of ONE
        is_active: Whether the pool accepts operations
        invariant: Cached invariant k after the last liquidity operation
    """

    invariant: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_weights(self) -> Self:
        for token in self.tokens:
            if not 0 < token.weight < ONE:
                raise ValueError(f"Weight of {token.mint} must be in (0, {ONE}), got {token.weight}")
        total = sum(token.weight for token in self.tokens)
        if total != ONE:
            raise ValueError(f"Token weights must sum to {ONE}, got {total}")
        return self

    def weights(self) -> list[Fp]:
        """Normalized weights in token order."""
        return [Fp(token.weight) for token in self.tokens]

    def with_balances(self, balances: list[Fp], invariant: Fp | None = None) -> WeightedPool:
        """New pool value with the given balances (and cached invariant)."""
        update: dict = {"tokens": self._tokens_with_balances(balances)}
        if invariant is not None:
            update["invariant"] = invariant.value
        return self.model_copy(update=update)


class StablePool(_Pool):
    """StableSwap pool.

    Attributes:
        tokens: 2-8 tokens (weights unused)
        swap_fee: Fee as a fraction of ONE
        is_active: Whether the pool accepts operations
        amp: Amplification scaled by AMP_PRECISION
        amp_target: Amplification the ramp moves toward, scaled by AMP_PRECISION
        amp_start_ts: Ramp start timestamp
        amp_end_ts: Ramp end timestamp
    """

    amp: int = Field(ge=MIN_AMP * AMP_PRECISION, le=MAX_AMP * AMP_PRECISION)
    amp_target: int = Field(ge=MIN_AMP * AMP_PRECISION, le=MAX_AMP * AMP_PRECISION)
    amp_start_ts: int = Field(default=0, ge=0)
    amp_end_ts: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_ramp(self) -> Self:
        if self.amp_end_ts < self.amp_start_ts:
            raise ValueError(
                f"amp_end_ts {self.amp_end_ts} is before amp_start_ts {self.amp_start_ts}"
            )
        return self

    @classmethod
    def create(cls, tokens: list[PoolToken], swap_fee: int, amp: int) -> StablePool:
        """Create a pool from an unscaled amplification (MIN_AMP..MAX_AMP).

        Raises:
            AmpOutOfRange: If amp is outside [MIN_AMP, MAX_AMP]
        """
        if not MIN_AMP <= amp <= MAX_AMP:
            raise AmpOutOfRange(f"amp must be in [{MIN_AMP}, {MAX_AMP}], got {amp}")
        scaled_amp = amp * AMP_PRECISION
        return cls(tokens=tuple(tokens), swap_fee=swap_fee, amp=scaled_amp, amp_target=scaled_amp)

    def current_amp(self, now: int) -> int:
        """Amplification at timestamp ``now``, following a linear ramp."""
        if now <= self.amp_start_ts:
            return self.amp
        if now >= self.amp_end_ts:
            return self.amp_target

        elapsed = now - self.amp_start_ts
        duration = self.amp_end_ts - self.amp_start_ts
        if self.amp_target >= self.amp:
            return self.amp + (self.amp_target - self.amp) * elapsed // duration
        return self.amp - (self.amp - self.amp_target) * elapsed // duration

    def with_balances(self, balances: list[Fp]) -> StablePool:
        """New pool value with the given balances."""
        return self.model_copy(update={"tokens": self._tokens_with_balances(balances)})
