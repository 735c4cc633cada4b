"""Pydantic schema for configuration validation."""

import hashlib
import json
from typing import Any, Dict, List

from pydantic import BaseModel, Field, field_validator, model_validator

from ..engine.fixed_point import AMOUNT_MAX, RATE_DENOMINATOR


class ProtocolConfig(BaseModel):
    """Tunable protocol parameters (the on-chain global config)."""
    admin: str = Field(min_length=1, description="Protocol admin identity")
    exchange_rate_native: int = Field(
        gt=0, description="Native units paid for exchange_rate_reward reward units"
    )
    exchange_rate_reward: int = Field(
        gt=0, description="Reward units bought with exchange_rate_native native units"
    )
    bonus_rate: int = Field(
        ge=0, le=RATE_DENOMINATOR,
        description="Early-bird uplift on reward tokens, per RATE_DENOMINATOR"
    )
    max_stake_count_to_get_bonus: int = Field(
        ge=0, description="Purchases with a pre-increment count below this get the bonus"
    )
    min_swap_amount: int = Field(ge=0, le=AMOUNT_MAX, description="Minimum reward tokens per purchase")
    max_swap_amount: int = Field(ge=0, le=AMOUNT_MAX, description="Maximum reward tokens per purchase")
    fee_treasury_rate: int = Field(
        ge=0, le=RATE_DENOMINATOR,
        description="Share of buyback output routed to the treasury, per RATE_DENOMINATOR"
    )
    purchase_enabled: bool = Field(default=True, description="Global purchase switch")
    redeem_enabled: bool = Field(default=True, description="Global redemption switch")
    initial_reward_allocation: int = Field(
        gt=0, le=AMOUNT_MAX,
        description="Reward tokens seeded into the treasury at launch (inventory pricing reference)"
    )
    inventory_pricing: bool = Field(
        default=False,
        description="After the bonus phase, scale quotes by treasury inventory / initial allocation"
    )

    @field_validator("admin")
    @classmethod
    def strip_admin(cls, v):
        """Normalise surrounding whitespace in identities."""
        v = v.strip()
        if not v:
            raise ValueError("admin must not be blank")
        return v

    @model_validator(mode="after")
    def validate_swap_bounds(self):
        """Ensure min_swap_amount <= max_swap_amount."""
        if self.min_swap_amount > self.max_swap_amount:
            raise ValueError(
                f"min_swap_amount ({self.min_swap_amount}) must not exceed "
                f"max_swap_amount ({self.max_swap_amount})"
            )
        return self


class Pool(BaseModel):
    """Reference constant-product market used for buybacks."""
    native_reserve: int = Field(gt=0, description="Native units in the pool")
    reward_reserve: int = Field(gt=0, description="Reward tokens in the pool")
    trade_fee_rate: int = Field(
        ge=0, lt=RATE_DENOMINATOR, default=2500,
        description="Input-side trade fee, per RATE_DENOMINATOR"
    )


class ActionWeights(BaseModel):
    """Relative frequency of simulated actions."""
    purchase: float = Field(ge=0, default=0.35)
    yield_arrival: float = Field(ge=0, default=0.25)
    buyback: float = Field(ge=0, default=0.10)
    redeem: float = Field(ge=0, default=0.20)
    sell: float = Field(ge=0, default=0.10)

    @model_validator(mode="after")
    def validate_positive_total(self):
        """At least one action must be possible."""
        if self.total() <= 0:
            raise ValueError("action weights must not all be zero")
        return self

    def total(self) -> float:
        return self.purchase + self.yield_arrival + self.buyback + self.redeem + self.sell

    def names(self) -> List[str]:
        return ["purchase", "yield_arrival", "buyback", "redeem", "sell"]

    def probabilities(self) -> List[float]:
        """Normalised probabilities in ``names()`` order."""
        total = self.total()
        return [getattr(self, name) / total for name in self.names()]


class Simulation(BaseModel):
    """Scenario simulation parameters."""
    num_users: int = Field(gt=0, description="Number of simulated participants")
    num_steps: int = Field(gt=0, description="Number of simulated actions")
    random_seed: int = Field(description="Random seed for reproducibility")
    native_per_user: int = Field(gt=0, description="Native units each participant starts with")
    min_purchase: int = Field(gt=0, description="Smallest simulated purchase (native units)")
    max_purchase: int = Field(gt=0, description="Largest simulated purchase (native units)")
    yield_rate_bps: int = Field(
        ge=0, le=10_000, default=5,
        description="Validator yield per arrival, in basis points of total stake"
    )
    max_sell_fraction: float = Field(
        ge=0, le=1, default=0.5,
        description="Largest fraction of holdings a participant sells in one step"
    )
    seconds_per_step: int = Field(gt=0, default=3600, description="Clock advance per step")
    actions: ActionWeights = Field(default_factory=ActionWeights)

    @model_validator(mode="after")
    def validate_purchase_range(self):
        """Ensure min_purchase <= max_purchase."""
        if self.min_purchase > self.max_purchase:
            raise ValueError("min_purchase must not exceed max_purchase")
        return self


class Config(BaseModel):
    """Complete configuration for the stake and reward engine."""
    protocol: ProtocolConfig
    pool: Pool
    simulation: Simulation

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump()
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary."""
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()
