"""Structured notifications emitted after each committed operation."""

from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class Event:
    """Base notification."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event"] = self.name
        return data


@dataclass(frozen=True)
class Initialized(Event):
    admin: str
    bonus_rate: int
    max_stake_count_to_get_bonus: int
    min_swap_amount: int
    max_swap_amount: int
    fee_treasury_rate: int
    purchase_enabled: bool
    redeem_enabled: bool
    initial_reward_allocation: int


@dataclass(frozen=True)
class ConfigUpdated(Event):
    admin: str
    min_swap_amount: int
    max_swap_amount: int
    fee_treasury_rate: int
    purchase_enabled: bool
    redeem_enabled: bool


@dataclass(frozen=True)
class Purchased(Event):
    purchaser: str
    native_amount: int
    reward_amount: int
    bonus_applied: bool


@dataclass(frozen=True)
class ManualPurchased(Event):
    purchaser: str
    native_amount: int
    reward_amount: int


@dataclass(frozen=True)
class BuybackExecuted(Event):
    native_amount: int
    reward_token_bought: int
    fee_to_treasury: int


@dataclass(frozen=True)
class RewardsCollected(Event):
    collector: str
    reward_token_collected: int
    reward_token_forfeited: int


@dataclass(frozen=True)
class UserBlacklisted(Event):
    user: str
    stake_blacklisted: int
    reward_token_forfeited: int


@dataclass(frozen=True)
class EmergencyWithdrawn(Event):
    action: str
    amount: int
