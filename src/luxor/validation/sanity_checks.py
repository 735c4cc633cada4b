"""Sanity checks and invariant validation for protocol configs and snapshots."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config.schema import Config
from ..engine.fixed_point import RATE_DENOMINATOR


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "input", "invariant", "solvency"
    message: str
    details: Optional[str] = None


class InvariantChecker:
    """Run sanity checks on configuration and protocol snapshots."""

    def __init__(self, config: Config):
        """Initialize with configuration."""
        self.config = config

    def check_config_inputs(self) -> List[ValidationWarning]:
        """
        Check configuration inputs for implausible values.

        Returns:
            List of validation warnings
        """
        warnings = []
        protocol = self.config.protocol

        if protocol.bonus_rate > RATE_DENOMINATOR // 2:
            warnings.append(ValidationWarning(
                severity="warning",
                category="bounds",
                message="Early-bird bonus above 50% of the base quote",
                details=f"bonus_rate={protocol.bonus_rate} / {RATE_DENOMINATOR}"
            ))

        if protocol.fee_treasury_rate == RATE_DENOMINATOR:
            warnings.append(ValidationWarning(
                severity="warning",
                category="bounds",
                message="Treasury takes the whole buyback; stakers never earn reward tokens",
                details=f"fee_treasury_rate={protocol.fee_treasury_rate}"
            ))

        if protocol.max_swap_amount > protocol.initial_reward_allocation:
            warnings.append(ValidationWarning(
                severity="warning",
                category="bounds",
                message="A single purchase may exceed the whole initial treasury allocation",
                details=(f"max_swap_amount={protocol.max_swap_amount:,}, "
                         f"initial_reward_allocation={protocol.initial_reward_allocation:,}")
            ))

        sim = self.config.simulation
        if sim.max_purchase > sim.native_per_user:
            warnings.append(ValidationWarning(
                severity="warning",
                category="input",
                message="Simulated purchases can exceed a participant's starting balance",
                details=f"max_purchase={sim.max_purchase:,}, native_per_user={sim.native_per_user:,}"
            ))

        return warnings

    def check_snapshot(self, snapshot: Dict[str, Any]) -> List[ValidationWarning]:
        """
        Check one protocol snapshot for broken invariants.

        Args:
            snapshot: Output of ``StakeProtocol.snapshot()``

        Returns:
            List of validation warnings
        """
        warnings = []
        step = snapshot.get('step', '?')

        if snapshot['staked_sum'] != snapshot['total_staked']:
            warnings.append(ValidationWarning(
                severity="error",
                category="invariant",
                message=f"Stake sum diverged from total_staked at step {step}",
                details=f"sum={snapshot['staked_sum']}, total={snapshot['total_staked']}"
            ))

        for name, value in snapshot.items():
            if isinstance(value, int) and not isinstance(value, bool) and value < 0:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="bounds",
                    message=f"Negative value for {name} at step {step}",
                    details=f"Value: {value}"
                ))

        # Settled rewards must be backed by the reward vault
        if snapshot['pending_reward_token_sum'] > snapshot['reward_vault']:
            warnings.append(ValidationWarning(
                severity="error",
                category="solvency",
                message=f"Reward vault cannot cover settled rewards at step {step}",
                details=(f"pending={snapshot['pending_reward_token_sum']}, "
                         f"vault={snapshot['reward_vault']}")
            ))

        if snapshot['total_native_used_for_buyback'] > snapshot['total_native_rewards_accrued']:
            warnings.append(ValidationWarning(
                severity="error",
                category="invariant",
                message=f"More native converted than ever accrued at step {step}",
                details=(f"used={snapshot['total_native_used_for_buyback']}, "
                         f"accrued={snapshot['total_native_rewards_accrued']}")
            ))

        return warnings

    def check_transition(
        self,
        before: Dict[str, Any],
        after: Dict[str, Any],
    ) -> List[ValidationWarning]:
        """Check monotonic fields between two consecutive snapshots."""
        warnings = []
        monotonic = [
            'native_reward_index',
            'reward_token_index',
            'total_stake_events',
            'total_native_rewards_accrued',
            'total_native_used_for_buyback',
            'total_reward_token_accrued',
            'total_reward_token_claimed',
            'total_reward_token_forfeited',
        ]
        for name in monotonic:
            if after[name] < before[name]:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="monotonicity",
                    message=f"{name} decreased at step {after.get('step', '?')}",
                    details=f"{before[name]} -> {after[name]}"
                ))
        return warnings


def validate_simulation_results(
    config: Config,
    snapshots: List[Dict[str, Any]],
) -> List[ValidationWarning]:
    """
    Validate a complete simulated run.

    Args:
        config: Simulation configuration
        snapshots: Protocol snapshots, one per step

    Returns:
        List of all validation warnings
    """
    checker = InvariantChecker(config)
    warnings = checker.check_config_inputs()

    for i, snapshot in enumerate(snapshots):
        warnings.extend(checker.check_snapshot(snapshot))
        if i > 0:
            warnings.extend(checker.check_transition(snapshots[i - 1], snapshot))

    return warnings
