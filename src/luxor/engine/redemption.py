"""Redemption - Settle pending reward tokens and apply forfeiture.

Key Concepts:
- Settlement always runs first and is idempotent
- Forfeiture: a holder whose reward-token holdings fell below the recorded
  baseline gives up the same fraction of pending rewards
  forfeited = pending * (base - current) / base, clamped to pending
- Forfeited rewards go to the treasury, the rest to the holder
- Redeeming with nothing pending succeeds with zero transfers
"""

from dataclasses import dataclass

from .accounting import GlobalAccounting, UserPosition, settle_position
from .fixed_point import AMOUNT_MAX, checked_add, mul_div


@dataclass(frozen=True)
class RedemptionResult:
    """Outcome of one redemption."""
    claimable: int  # Paid to the holder
    forfeited: int  # Routed to the treasury
    current_holdings: int  # Holdings used for the forfeiture comparison

    @property
    def total(self) -> int:
        return self.claimable + self.forfeited


class RedemptionEngine:
    """Forfeiture-aware settlement of reward-token yield."""

    @staticmethod
    def compute_forfeiture(pending: int, base_holdings: int, current_holdings: int) -> int:
        """
        Forfeited share of ``pending`` for a holdings shortfall.

        Args:
            pending: Settled reward tokens awaiting payout
            base_holdings: Recorded baseline holdings
            current_holdings: Holdings at redemption time

        Returns:
            Reward tokens forfeited (0 when holdings are at or above baseline)
        """
        if pending <= 0 or base_holdings <= 0 or current_holdings >= base_holdings:
            return 0
        shortfall = base_holdings - current_holdings
        return min(pending, mul_div(pending, shortfall, base_holdings))

    def redeem(
        self,
        accounting: GlobalAccounting,
        position: UserPosition,
        current_holdings: int,
    ) -> RedemptionResult:
        """
        Settle a position and book the payout.

        Mutates ``accounting`` and ``position``; the caller moves the tokens.

        Args:
            accounting: Global aggregate (working copy)
            position: Redeeming position (working copy)
            current_holdings: Holder's reward-token balance right now

        Returns:
            RedemptionResult
        """
        settle_position(accounting, position)

        pending = position.pending_reward_token
        if pending == 0:
            return RedemptionResult(claimable=0, forfeited=0, current_holdings=current_holdings)

        forfeited = self.compute_forfeiture(pending, position.base_holdings, current_holdings)
        claimable = pending - forfeited

        position.pending_reward_token = 0
        position.total_claimed = checked_add(position.total_claimed, claimable, AMOUNT_MAX)
        position.total_forfeited = checked_add(position.total_forfeited, forfeited, AMOUNT_MAX)
        # The shortfall has been penalised once; later shortfalls measure from here
        position.base_holdings = min(position.base_holdings, current_holdings)

        accounting.total_reward_token_claimed = checked_add(
            accounting.total_reward_token_claimed, claimable, AMOUNT_MAX
        )
        accounting.total_reward_token_forfeited = checked_add(
            accounting.total_reward_token_forfeited, forfeited, AMOUNT_MAX
        )

        return RedemptionResult(
            claimable=claimable,
            forfeited=forfeited,
            current_holdings=current_holdings,
        )
