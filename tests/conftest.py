"""Shared fixtures for engine tests."""

import os
import sys

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from luxor.collaborators import (
    NATIVE_STAKE_VAULT,
    REWARD_TREASURY_VAULT,
    InMemoryVaults,
    RecordingEventSink,
    native_account,
)
from luxor.config.schema import ProtocolConfig
from luxor.protocol import StakeProtocol

NOW = 1_700_000_000
USER_NATIVE = 1_000_000
TREASURY = 1_000_000_000


class FixedRateSwap:
    """Swap returning ``rate`` reward tokens per native unit."""

    def __init__(self, rate: int = 1):
        self.rate = rate
        self.calls = []

    def swap(self, native_amount: int) -> int:
        self.calls.append(native_amount)
        return native_amount * self.rate


def protocol_config(**overrides) -> ProtocolConfig:
    """1:1 pricing, no bonus, no fee unless overridden."""
    data = dict(
        admin="admin",
        exchange_rate_native=1,
        exchange_rate_reward=1,
        bonus_rate=0,
        max_stake_count_to_get_bonus=0,
        min_swap_amount=1,
        max_swap_amount=10 ** 15,
        fee_treasury_rate=0,
        initial_reward_allocation=TREASURY,
    )
    data.update(overrides)
    return ProtocolConfig(**data)


@pytest.fixture
def make_protocol():
    """Factory for a funded protocol over in-memory collaborators."""
    def _make(users=("alice", "bob"), swap=None, treasury=TREASURY, events=None, **overrides):
        vaults = InMemoryVaults({native_account(u): USER_NATIVE for u in users})
        vaults.credit(native_account("admin"), USER_NATIVE)
        vaults.credit(REWARD_TREASURY_VAULT, treasury)
        return StakeProtocol.initialize(
            protocol_config(**overrides),
            vaults,
            swap=swap or FixedRateSwap(),
            events=events or RecordingEventSink(),
            clock=lambda: NOW,
        )
    return _make


@pytest.fixture
def fixed_rate_swap():
    """The FixedRateSwap class, for tests that need a specific rate."""
    return FixedRateSwap


@pytest.fixture
def add_yield():
    """Simulate validator rewards landing in native stake custody."""
    def _add(protocol: StakeProtocol, amount: int):
        protocol.vaults.credit(NATIVE_STAKE_VAULT, amount)
    return _add
