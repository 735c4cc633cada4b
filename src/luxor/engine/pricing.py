"""Purchase pricing - Reward tokens owed for a native stake.

Key Concepts:
- Base price is a fixed exchange ratio: exchange_rate_native native units buy
  exchange_rate_reward reward units
- Early-bird bonus: while the pre-increment purchase count is below
  max_stake_count_to_get_bonus, the reward side is uplifted by bonus_rate
- Optional inventory pricing after the bonus phase: quotes shrink as the
  treasury sells down its initial allocation
- The native side is never discounted; the staked amount is what was paid
"""

from dataclasses import dataclass

from ..errors import AmountOutOfRange
from .fixed_point import AMOUNT_MAX, RATE_DENOMINATOR, checked_add, mul_div


@dataclass(frozen=True)
class PurchaseQuote:
    """Priced purchase."""
    native_amount: int  # Native units staked
    reward_amount: int  # Reward tokens delivered to the purchaser
    base_reward_amount: int  # Reward tokens before bonus/inventory adjustment
    bonus_applied: bool


class PricingEngine:
    """Prices purchases and enforces swap bounds."""

    def __init__(
        self,
        exchange_rate_native: int,
        exchange_rate_reward: int,
        bonus_rate: int = 0,
        max_stake_count_to_get_bonus: int = 0,
        min_swap_amount: int = 0,
        max_swap_amount: int = AMOUNT_MAX,
        inventory_pricing: bool = False,
        initial_reward_allocation: int = 0,
    ):
        """
        Initialize pricing engine.

        Args:
            exchange_rate_native: Native side of the base exchange ratio
            exchange_rate_reward: Reward side of the base exchange ratio
            bonus_rate: Early-bird uplift per RATE_DENOMINATOR
            max_stake_count_to_get_bonus: Bonus tier cutoff (pre-increment count)
            min_swap_amount: Minimum reward tokens per purchase
            max_swap_amount: Maximum reward tokens per purchase
            inventory_pricing: Scale post-bonus quotes by treasury inventory
            initial_reward_allocation: Reference inventory for inventory pricing
        """
        if exchange_rate_native <= 0 or exchange_rate_reward <= 0:
            raise ValueError("exchange rates must be positive")
        self.exchange_rate_native = exchange_rate_native
        self.exchange_rate_reward = exchange_rate_reward
        self.bonus_rate = bonus_rate
        self.max_stake_count_to_get_bonus = max_stake_count_to_get_bonus
        self.min_swap_amount = min_swap_amount
        self.max_swap_amount = max_swap_amount
        self.inventory_pricing = inventory_pricing
        self.initial_reward_allocation = initial_reward_allocation

    @classmethod
    def from_config(cls, protocol) -> 'PricingEngine':
        """Build from a ``ProtocolConfig``."""
        return cls(
            exchange_rate_native=protocol.exchange_rate_native,
            exchange_rate_reward=protocol.exchange_rate_reward,
            bonus_rate=protocol.bonus_rate,
            max_stake_count_to_get_bonus=protocol.max_stake_count_to_get_bonus,
            min_swap_amount=protocol.min_swap_amount,
            max_swap_amount=protocol.max_swap_amount,
            inventory_pricing=protocol.inventory_pricing,
            initial_reward_allocation=protocol.initial_reward_allocation,
        )

    def bonus_applies(self, total_stake_events: int) -> bool:
        """The purchase that crosses the threshold still gets the bonus."""
        return total_stake_events < self.max_stake_count_to_get_bonus

    def base_reward(self, native_amount: int) -> int:
        """Reward tokens at the base exchange ratio (floored)."""
        return mul_div(native_amount, self.exchange_rate_reward, self.exchange_rate_native)

    def quote(
        self,
        native_amount: int,
        total_stake_events: int,
        treasury_inventory: int = None,
        min_reward_out: int = 0,
    ) -> PurchaseQuote:
        """
        Price a purchase.

        Args:
            native_amount: Native units the purchaser stakes
            total_stake_events: Purchase count before this purchase
            treasury_inventory: Reward tokens left in the treasury (inventory pricing)
            min_reward_out: Purchaser's slippage floor on reward tokens

        Returns:
            PurchaseQuote

        Raises:
            AmountOutOfRange: If the amount is not positive, the quote falls
                outside [min_swap_amount, max_swap_amount], or below min_reward_out
        """
        if native_amount <= 0:
            raise AmountOutOfRange(f"purchase amount must be positive, got {native_amount}")
        if native_amount > AMOUNT_MAX:
            raise AmountOutOfRange(f"purchase amount {native_amount} exceeds {AMOUNT_MAX}")

        base = self.base_reward(native_amount)
        reward = base
        bonus = self.bonus_applies(total_stake_events)
        if bonus:
            reward = checked_add(reward, mul_div(reward, self.bonus_rate, RATE_DENOMINATOR))
        elif self.inventory_pricing and treasury_inventory is not None:
            reward = mul_div(reward, treasury_inventory, self.initial_reward_allocation)

        if reward < self.min_swap_amount or reward > self.max_swap_amount:
            raise AmountOutOfRange(
                f"quote of {reward} reward tokens outside "
                f"[{self.min_swap_amount}, {self.max_swap_amount}]"
            )
        if reward < min_reward_out:
            raise AmountOutOfRange(
                f"quote of {reward} reward tokens below requested minimum {min_reward_out}"
            )

        return PurchaseQuote(
            native_amount=native_amount,
            reward_amount=reward,
            base_reward_amount=base,
            bonus_applied=bonus,
        )
