"""Buyback - Convert accrued native yield into reward-token supply.

Flow:
1. Observe native yield since the last accounting pass
2. Swap the unconverted yield through the external market maker
3. Split the output: treasury fee, remainder to the reward vault
4. Accrue the reward-vault portion into ``reward_token_index``

The swap result is fully known before any field below is written; a failing
swap leaves the accounting untouched by steps 3-4.
"""

import logging
from dataclasses import dataclass

from ..errors import DivisionByZero, InsufficientFunds, LuxorError, NoYieldAvailable, SwapFailed
from .accounting import GlobalAccounting, sync_native_yield
from .fixed_point import AMOUNT_MAX, RATE_DENOMINATOR, FixedPointIndex, checked_add, mul_div

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuybackResult:
    """Outcome of one buyback round."""
    native_amount: int  # Native yield sent to the swap
    reward_token_out: int  # Reward tokens returned by the swap
    treasury_fee: int  # Portion routed to the reward-token treasury
    reward_portion: int  # Portion distributed to stakers through the index
    index_increment: int  # Movement of reward_token_index


class BuybackEngine:
    """Native-yield to reward-token conversion."""

    def __init__(self, fee_treasury_rate: int = 0):
        """
        Initialize buyback engine.

        Args:
            fee_treasury_rate: Treasury share of swap output, per RATE_DENOMINATOR
        """
        if not 0 <= fee_treasury_rate <= RATE_DENOMINATOR:
            raise ValueError(f"fee_treasury_rate must be within [0, {RATE_DENOMINATOR}]")
        self.fee_treasury_rate = fee_treasury_rate

    def split(self, reward_token_out: int) -> tuple[int, int]:
        """
        Split swap output into (treasury_fee, reward_portion).

        The fee is floored, so rounding dust always goes to stakers.
        """
        fee = mul_div(reward_token_out, self.fee_treasury_rate, RATE_DENOMINATOR)
        return fee, reward_token_out - fee

    def available_yield(self, accounting: GlobalAccounting, native_balance: int) -> int:
        """
        Observe new native yield and return what is left to convert.

        Raises:
            NoYieldAvailable: If nothing is waiting for conversion
        """
        sync_native_yield(accounting, native_balance)
        accrued = accounting.native_available_for_buyback
        if accrued <= 0:
            raise NoYieldAvailable(
                f"no native yield to convert (custody balance {native_balance}, "
                f"last observed {accounting.last_observed_native_balance})"
            )
        return accrued

    def execute(self, accounting: GlobalAccounting, native_balance: int, swap, now: int) -> BuybackResult:
        """
        Run one buyback round against ``accounting``.

        Args:
            accounting: Global aggregate (mutated; callers pass a working copy)
            native_balance: Current native custody balance
            swap: Swap collaborator exposing ``swap(native_amount) -> int``
            now: Timestamp of the round

        Returns:
            BuybackResult

        Raises:
            NoYieldAvailable: If no unconverted yield exists
            DivisionByZero: If nothing is staked to receive the output
            InsufficientFunds: If custody no longer holds the accrued yield
            SwapFailed: If the market maker rejects the swap
        """
        accrued = self.available_yield(accounting, native_balance)
        if accounting.total_staked == 0:
            raise DivisionByZero("buyback with no stake: output cannot be distributed")
        if accrued > native_balance:
            raise InsufficientFunds(
                f"custody holds {native_balance} native, buyback needs {accrued}"
            )

        try:
            reward_token_out = swap.swap(accrued)
        except SwapFailed:
            raise
        except LuxorError as exc:
            raise SwapFailed(str(exc)) from exc
        if not isinstance(reward_token_out, int) or reward_token_out <= 0:
            raise SwapFailed(f"swap returned unusable output {reward_token_out!r}")

        fee, portion = self.split(reward_token_out)
        increment = FixedPointIndex.accrue(portion, accounting.total_staked)

        accounting.reward_token_index = FixedPointIndex.advance(accounting.reward_token_index, increment)
        accounting.total_reward_token_accrued = checked_add(
            accounting.total_reward_token_accrued, portion, AMOUNT_MAX
        )
        accounting.total_native_used_for_buyback = checked_add(
            accounting.total_native_used_for_buyback, accrued, AMOUNT_MAX
        )
        # Converted yield leaves custody with this round
        accounting.last_observed_native_balance = native_balance - accrued
        accounting.buyback_count += 1
        accounting.last_buyback_time = now
        accounting.last_update_time = now

        logger.debug("Buyback converted %d native into %d reward tokens (fee %d, index +%d)",
                     accrued, reward_token_out, fee, increment)
        return BuybackResult(
            native_amount=accrued,
            reward_token_out=reward_token_out,
            treasury_fee=fee,
            reward_portion=portion,
            index_increment=increment,
        )
