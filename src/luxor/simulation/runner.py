"""Scenario runner - Drive the protocol through a random sequence of operations.

Key Features:
- Seeded numpy generator: the same config and seed replay the same run
- Participants purchase, redeem and sell reward tokens; validator yield
  arrives as growth of native custody; an operator triggers buybacks
- Expected domain rejections (no yield, out-of-range quote, empty wallet) are
  counted, never fatal
- One protocol snapshot per step, validated against the engine invariants
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List

import numpy as np

from ..collaborators import (
    MARKET,
    NATIVE_STAKE_VAULT,
    REWARD_TREASURY_VAULT,
    ConstantProductSwap,
    InMemoryVaults,
    RecordingEventSink,
    native_account,
    reward_account,
)
from ..config.schema import Config
from ..engine.fixed_point import mul_div
from ..errors import LuxorError
from ..events import Event
from ..protocol import StakeProtocol
from ..validation.sanity_checks import ValidationWarning, validate_simulation_results

logger = logging.getLogger(__name__)


@dataclass
class SimulationResult:
    """Complete simulation result."""
    config: Config
    snapshots: List[Dict[str, Any]]
    events: List[Event]
    final_metrics: Dict[str, Any]
    rejected: Dict[str, int] = field(default_factory=dict)
    warnings: List[ValidationWarning] = field(default_factory=list)

    @property
    def errors(self) -> List[ValidationWarning]:
        return [w for w in self.warnings if w.severity == "error"]


class SimulationClock:
    """Deterministic clock advanced by the runner."""

    def __init__(self, start: int = 0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class ScenarioRunner:
    """Main scenario runner."""

    def __init__(self, config: Config):
        """
        Initialize scenario runner.

        Args:
            config: Simulation configuration
        """
        self.config = config
        self.users = [f"user{i:03d}" for i in range(config.simulation.num_users)]

    def build_protocol(self, clock: SimulationClock) -> StakeProtocol:
        """Fund wallets and the treasury, then initialize the protocol."""
        sim = self.config.simulation
        vaults = InMemoryVaults({native_account(u): sim.native_per_user for u in self.users})
        vaults.credit(REWARD_TREASURY_VAULT, self.config.protocol.initial_reward_allocation)

        return StakeProtocol.initialize(
            self.config.protocol,
            vaults,
            swap=ConstantProductSwap.from_config(self.config.pool),
            events=RecordingEventSink(),
            clock=clock,
        )

    def run(self, random_seed: int = None, num_steps: int = None) -> SimulationResult:
        """
        Run one scenario.

        Args:
            random_seed: Seed (defaults to config value)
            num_steps: Number of actions (defaults to config value)

        Returns:
            SimulationResult
        """
        sim = self.config.simulation
        if random_seed is None:
            random_seed = sim.random_seed
        if num_steps is None:
            num_steps = sim.num_steps

        rng = np.random.default_rng(random_seed)
        clock = SimulationClock()
        protocol = self.build_protocol(clock)
        actions = sim.actions.names()
        probabilities = sim.actions.probabilities()

        rejected: Counter = Counter()
        executed: Counter = Counter()
        snapshots = [self._snapshot(protocol, 0, "initialize")]

        for step in range(1, num_steps + 1):
            clock.advance(sim.seconds_per_step)
            action = actions[int(rng.choice(len(actions), p=probabilities))]
            user = self.users[int(rng.integers(len(self.users)))]
            try:
                self._apply(protocol, action, user, rng)
                executed[action] += 1
            except LuxorError as e:
                rejected[f"{action}:{type(e).__name__}"] += 1
                logger.debug("Step %d %s by %s rejected: %s", step, action, user, e)
            snapshots.append(self._snapshot(protocol, step, action))

        warnings = validate_simulation_results(self.config, snapshots)
        for warning in warnings:
            if warning.severity == "error":
                logger.warning("%s: %s", warning.message, warning.details)

        return SimulationResult(
            config=self.config,
            snapshots=snapshots,
            events=list(protocol.events.events),
            final_metrics=self._final_metrics(protocol, executed),
            rejected=dict(rejected),
            warnings=warnings,
        )

    def _apply(self, protocol: StakeProtocol, action: str, user: str, rng) -> None:
        sim = self.config.simulation
        vaults = protocol.vaults
        if action == "purchase":
            amount = int(rng.integers(sim.min_purchase, sim.max_purchase + 1))
            protocol.purchase(user, amount)
        elif action == "yield_arrival":
            total = protocol.accounting.total_staked
            vaults.credit(NATIVE_STAKE_VAULT, mul_div(total, sim.yield_rate_bps, 10_000))
        elif action == "buyback":
            protocol.buyback()
        elif action == "redeem":
            protocol.redeem(user)
        elif action == "sell":
            held = vaults.balance(reward_account(user))
            amount = int(held * rng.uniform(0, sim.max_sell_fraction))
            vaults.transfer(reward_account(user), MARKET, amount)
        else:
            raise ValueError(f"Unknown action: {action}")

    @staticmethod
    def _snapshot(protocol: StakeProtocol, step: int, action: str) -> Dict[str, Any]:
        snapshot = protocol.snapshot()
        snapshot['step'] = step
        snapshot['action'] = action
        return snapshot

    @staticmethod
    def _final_metrics(protocol: StakeProtocol, executed: Counter) -> Dict[str, Any]:
        accounting = protocol.accounting
        positions = protocol.positions()
        claimed = accounting.total_reward_token_claimed
        forfeited = accounting.total_reward_token_forfeited
        redeemed = claimed + forfeited
        return {
            'total_staked': accounting.total_staked,
            'stakers': sum(1 for p in positions if p.staked_amount > 0),
            'purchases': accounting.total_stake_events,
            'buybacks': accounting.buyback_count,
            'native_used_for_buyback': accounting.total_native_used_for_buyback,
            'reward_token_accrued': accounting.total_reward_token_accrued,
            'reward_token_claimed': claimed,
            'reward_token_forfeited': forfeited,
            'forfeiture_ratio': forfeited / redeemed if redeemed else 0.0,
            'executed': dict(executed),
        }
