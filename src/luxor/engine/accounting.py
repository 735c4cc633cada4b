"""Reward-index bookkeeping - Global aggregate and per-user positions.

Key Concepts:
- Two reward streams accrue against the same stake: native yield (SOL) and
  reward-token yield (LXR bought back from native yield)
- Each stream is a monotonically increasing reward-per-token index
- A position stores the index value at its last settlement; settling credits
  ``staked_amount * (index - checkpoint)`` and moves the checkpoint forward
- Index accrual MUST happen before ``total_staked`` changes, so existing
  stakers are credited for yield earned while they were staked and new stake
  starts at the post-update index
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, Optional

from .fixed_point import AMOUNT_MAX, FixedPointIndex, checked_add, checked_sub

logger = logging.getLogger(__name__)


@dataclass
class GlobalAccounting:
    """Protocol-wide aggregate, created once at initialization.

    Invariant: total_staked == sum(position.staked_amount for every position)
    """
    total_staked: int = 0  # Native units staked across all positions
    total_stake_events: int = 0  # Priced purchases so far (drives the bonus tier)
    native_reward_index: int = 0  # Cumulative native yield per staked unit, scaled
    reward_token_index: int = 0  # Cumulative reward-token yield per staked unit, scaled
    last_observed_native_balance: int = 0  # Native custody balance at last accounting pass
    total_native_rewards_accrued: int = 0  # Native yield observed since inception
    total_native_used_for_buyback: int = 0  # Subset of accrued native converted by buybacks
    total_reward_token_accrued: int = 0  # Reward tokens distributed through the index
    total_reward_token_claimed: int = 0
    total_reward_token_forfeited: int = 0
    buyback_count: int = 0
    last_update_time: int = 0
    last_buyback_time: int = 0
    stake_deactivated: bool = False

    @property
    def native_available_for_buyback(self) -> int:
        """Observed native yield not yet converted by a buyback."""
        return self.total_native_rewards_accrued - self.total_native_used_for_buyback

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UserPosition:
    """Per-participant stake and reward checkpoints."""
    owner: str
    staked_amount: int = 0
    reward_token_index_checkpoint: int = 0
    pending_reward_token: int = 0  # Settled but unclaimed reward tokens
    native_reward_index_checkpoint: int = 0
    pending_native: int = 0  # Settled share of native yield (informational)
    base_holdings: int = 0  # Reward-token baseline used for forfeiture
    total_claimed: int = 0
    total_forfeited: int = 0
    blacklisted_stake: int = 0  # Stake moved away by an admin blacklist

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def open_position(accounting: GlobalAccounting, owner: str) -> UserPosition:
    """Create a fresh position checkpointed at the current indices (no retroactive yield)."""
    return UserPosition(
        owner=owner,
        reward_token_index_checkpoint=accounting.reward_token_index,
        native_reward_index_checkpoint=accounting.native_reward_index,
    )


def sync_native_yield(accounting: GlobalAccounting, native_balance: int) -> int:
    """
    Fold externally accrued native yield into the native index.

    Native rewards arrive through delegation, never through a deposit call, so
    they are detected as growth of the custody balance since the last pass.

    Args:
        accounting: Global aggregate (mutated)
        native_balance: Current native custody balance

    A balance below the last observation (slashing or another external
    debit) is not negative yield: the baseline drops to the current balance
    and no index moves.

    Returns:
        Newly observed yield (0 if none)
    """
    if native_balance < accounting.last_observed_native_balance:
        logger.warning("Native custody fell from %d to %d; resetting baseline",
                       accounting.last_observed_native_balance, native_balance)
        accounting.last_observed_native_balance = native_balance
        return 0
    if native_balance == accounting.last_observed_native_balance:
        return 0

    delta = native_balance - accounting.last_observed_native_balance
    accounting.total_native_rewards_accrued = checked_add(
        accounting.total_native_rewards_accrued, delta, AMOUNT_MAX
    )
    # No stake, no accrual: yield stays available for buyback but moves no index
    if accounting.total_staked > 0:
        increment = FixedPointIndex.accrue(delta, accounting.total_staked)
        accounting.native_reward_index = FixedPointIndex.advance(
            accounting.native_reward_index, increment
        )
    accounting.last_observed_native_balance = native_balance
    logger.debug("Observed %d native yield (native index now %d)",
                 delta, accounting.native_reward_index)
    return delta


def settle_position(accounting: GlobalAccounting, position: UserPosition) -> int:
    """
    Credit a position with everything both indices moved since its checkpoints.

    Idempotent: calling it again without index movement credits nothing.

    Returns:
        Reward tokens newly credited to ``pending_reward_token``
    """
    reward_owed = FixedPointIndex.owed(
        position.staked_amount,
        checked_sub(accounting.reward_token_index, position.reward_token_index_checkpoint),
    )
    native_owed = FixedPointIndex.owed(
        position.staked_amount,
        checked_sub(accounting.native_reward_index, position.native_reward_index_checkpoint),
    )
    position.pending_reward_token = checked_add(
        position.pending_reward_token, reward_owed, AMOUNT_MAX
    )
    position.pending_native = checked_add(position.pending_native, native_owed, AMOUNT_MAX)
    position.reward_token_index_checkpoint = accounting.reward_token_index
    position.native_reward_index_checkpoint = accounting.native_reward_index
    return reward_owed


def change_stake(
    accounting: GlobalAccounting,
    position: UserPosition,
    delta: int,
    native_balance: Optional[int] = None,
) -> None:
    """
    Apply a stake change with accrual ordering enforced.

    Order: observe native yield -> settle the position -> mutate stake. This is
    the only code path that changes ``staked_amount`` or ``total_staked``.

    Args:
        accounting: Global aggregate (mutated)
        position: Position whose stake changes (mutated)
        delta: Signed change in staked native units
        native_balance: Current native custody balance, before any deposit
            belonging to this change; None skips the yield observation
    """
    if native_balance is not None:
        sync_native_yield(accounting, native_balance)
    settle_position(accounting, position)

    if delta >= 0:
        position.staked_amount = checked_add(position.staked_amount, delta, AMOUNT_MAX)
        accounting.total_staked = checked_add(accounting.total_staked, delta, AMOUNT_MAX)
    else:
        position.staked_amount = checked_sub(position.staked_amount, -delta)
        accounting.total_staked = checked_sub(accounting.total_staked, -delta)


def staked_sum(positions: Iterable[UserPosition]) -> int:
    """Sum of stakes across positions (should equal ``total_staked``)."""
    return sum(p.staked_amount for p in positions)
