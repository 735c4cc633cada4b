"""Administrative overrides - privileged escape hatches.

Emergency actions are explicit tagged variants rather than integer mode
codes, so an out-of-range selector cannot be silently misrouted. Every
override that touches stake goes through ``change_stake`` and preserves
``sum(staked_amount) == total_staked``.

Authorization is checked by the protocol facade, not here.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .accounting import GlobalAccounting, UserPosition, change_stake, settle_position
from .fixed_point import AMOUNT_MAX, checked_add

ADMIN_POSITION_OWNER = "protocol-admin"


class RewardSource(Enum):
    """Reward-token vault an emergency withdrawal drains."""
    TREASURY = "treasury"
    REWARD_VAULT = "reward_vault"


@dataclass(frozen=True)
class WithdrawRewardAssets:
    """Drain a reward-token vault to the admin."""
    source: RewardSource = RewardSource.TREASURY


@dataclass(frozen=True)
class WithdrawNativeFees:
    """Drain the native treasury vault to the admin."""


@dataclass(frozen=True)
class DeactivateStake:
    """Ask the delegation collaborator to start unstaking the protocol stake."""


@dataclass(frozen=True)
class WithdrawStakedNative:
    """Move native units out of stake custody to the admin."""
    amount: int


@dataclass(frozen=True)
class CollectAdminRewards:
    """Sweep rewards settled on the admin position into the treasury."""


EmergencyAction = Union[
    WithdrawRewardAssets,
    WithdrawNativeFees,
    DeactivateStake,
    WithdrawStakedNative,
    CollectAdminRewards,
]

EMERGENCY_ACTIONS = (
    WithdrawRewardAssets,
    WithdrawNativeFees,
    DeactivateStake,
    WithdrawStakedNative,
    CollectAdminRewards,
)


def apply_manual_purchase(
    accounting: GlobalAccounting,
    position: UserPosition,
    native_amount: int,
    reward_amount: int,
    native_balance: Optional[int] = None,
) -> None:
    """
    Record an externally priced purchase.

    Bypasses pricing and does not count toward the bonus tier.
    """
    change_stake(accounting, position, native_amount, native_balance)
    position.base_holdings = checked_add(position.base_holdings, reward_amount, AMOUNT_MAX)


def blacklist_position(
    accounting: GlobalAccounting,
    position: UserPosition,
    admin_position: UserPosition,
) -> tuple[int, int]:
    """
    Confiscate a position: its stake and pending rewards move to the admin position.

    Args:
        accounting: Global aggregate (working copy)
        position: Blacklisted position (working copy)
        admin_position: Protocol admin position (working copy)

    Returns:
        (stake moved, reward tokens forfeited by the user)
    """
    settle_position(accounting, admin_position)
    stake = position.staked_amount
    change_stake(accounting, position, -stake)
    change_stake(accounting, admin_position, stake)

    forfeited = position.pending_reward_token
    position.total_forfeited = checked_add(position.total_forfeited, forfeited, AMOUNT_MAX)
    position.blacklisted_stake = checked_add(position.blacklisted_stake, stake, AMOUNT_MAX)
    position.pending_reward_token = 0
    position.pending_native = 0
    position.base_holdings = 0

    admin_position.pending_reward_token = checked_add(
        admin_position.pending_reward_token, forfeited, AMOUNT_MAX
    )
    return stake, forfeited


def collect_admin_rewards(accounting: GlobalAccounting, admin_position: UserPosition) -> int:
    """Settle the admin position and return (and clear) its pending rewards."""
    settle_position(accounting, admin_position)
    amount = admin_position.pending_reward_token
    admin_position.pending_reward_token = 0
    return amount
