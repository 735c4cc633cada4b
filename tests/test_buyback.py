"""Tests for native-yield buybacks and reward-token distribution."""

import copy

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from luxor.collaborators import (
    NATIVE_STAKE_VAULT,
    REWARD_TREASURY_VAULT,
    REWARD_VAULT,
    SWAP_POOL,
    ConstantProductSwap,
)
from luxor.engine.accounting import GlobalAccounting, settle_position, sync_native_yield
from luxor.engine.buyback import BuybackEngine
from luxor.errors import DivisionByZero, NoYieldAvailable, SwapFailed
from luxor.events import BuybackExecuted

from conftest import TREASURY


class FailingSwap:
    """Market maker that always reverts."""

    def swap(self, native_amount: int) -> int:
        raise SwapFailed("pool paused")


class TestBuybackEngine:
    """Fee split and argument checks."""

    def test_split_floors_fee(self):
        engine = BuybackEngine(fee_treasury_rate=50_000)
        assert engine.split(200) == (10, 190)
        assert engine.split(19) == (0, 19)

    def test_rejects_rate_above_one(self):
        with pytest.raises(ValueError):
            BuybackEngine(fee_treasury_rate=1_000_001)


class TestBuyback:
    """Buyback through the protocol."""

    def test_buyback_distributes_yield(self, make_protocol, add_yield, fixed_rate_swap):
        swap = fixed_rate_swap(rate=2)
        protocol = make_protocol(swap=swap, fee_treasury_rate=50_000)
        protocol.purchase("alice", 1000)
        add_yield(protocol, 100)

        result = protocol.buyback()

        assert swap.calls == [100]
        assert result.native_amount == 100
        assert result.reward_token_out == 200
        assert result.treasury_fee == 10
        assert result.reward_portion == 190
        assert result.index_increment == 190_000_000_000

        acc = protocol.accounting
        assert acc.reward_token_index == 190_000_000_000
        assert acc.total_reward_token_accrued == 190
        assert acc.total_native_rewards_accrued == 100
        assert acc.total_native_used_for_buyback == 100
        assert acc.native_available_for_buyback == 0
        assert acc.last_observed_native_balance == 1000
        assert acc.buyback_count == 1

        vaults = protocol.vaults
        assert vaults.balance(NATIVE_STAKE_VAULT) == 1000
        assert vaults.balance(SWAP_POOL) == 100
        assert vaults.balance(REWARD_VAULT) == 190
        assert vaults.balance(REWARD_TREASURY_VAULT) == TREASURY - 1000 + 10

        event = protocol.events.of_type(BuybackExecuted)[0]
        assert (event.native_amount, event.reward_token_bought, event.fee_to_treasury) == (100, 200, 10)

    def test_second_buyback_without_yield(self, make_protocol, add_yield):
        protocol = make_protocol()
        protocol.purchase("alice", 1000)
        add_yield(protocol, 100)
        protocol.buyback()

        before = protocol.snapshot()
        with pytest.raises(NoYieldAvailable):
            protocol.buyback()
        assert protocol.snapshot() == before

    def test_swap_failure_changes_nothing(self, make_protocol, add_yield):
        protocol = make_protocol(swap=FailingSwap())
        protocol.purchase("alice", 1000)
        add_yield(protocol, 100)

        before = protocol.snapshot()
        with pytest.raises(SwapFailed):
            protocol.buyback()
        assert protocol.snapshot() == before
        # The yield is still waiting for a later round
        assert protocol.accounting.last_observed_native_balance == 1000

    def test_buyback_with_no_stake(self, make_protocol, add_yield, fixed_rate_swap):
        swap = fixed_rate_swap()
        protocol = make_protocol(swap=swap)
        add_yield(protocol, 100)

        with pytest.raises(DivisionByZero):
            protocol.buyback()
        assert swap.calls == []
        assert protocol.vaults.balance(NATIVE_STAKE_VAULT) == 100

    def test_constant_product_pool(self, make_protocol, add_yield):
        pool = ConstantProductSwap(native_reserve=1_000_000, reward_reserve=2_000_000, trade_fee_rate=0)
        protocol = make_protocol(swap=pool)
        protocol.purchase("alice", 1000)
        add_yield(protocol, 1000)

        result = protocol.buyback()
        # 1000 * 2_000_000 // 1_001_000
        assert result.reward_token_out == 1998
        assert pool.native_reserve == 1_001_000
        assert pool.reward_reserve == 2_000_000 - 1998


class TestCustodyLoss:
    """Custody falling below the last observation (slashing)."""

    def test_yield_after_loss_is_accrued(self, make_protocol, add_yield):
        protocol = make_protocol()
        protocol.purchase("alice", 1000)
        protocol.vaults.transfer(NATIVE_STAKE_VAULT, "external:slashed", 100)
        protocol.purchase("bob", 1000)

        acc = protocol.accounting
        assert acc.last_observed_native_balance == 1900
        assert acc.total_native_rewards_accrued == 0

        add_yield(protocol, 50)
        protocol.purchase("alice", 10)

        acc = protocol.accounting
        assert acc.total_native_rewards_accrued == 50
        assert acc.native_reward_index == 25_000_000_000
        assert acc.last_observed_native_balance == 1960

    def test_loss_resets_baseline_without_accrual(self):
        acc = GlobalAccounting(total_staked=1000, last_observed_native_balance=1000)
        assert sync_native_yield(acc, 900) == 0
        assert acc.last_observed_native_balance == 900
        assert acc.native_reward_index == 0
        assert sync_native_yield(acc, 950) == 50
        assert acc.native_reward_index == 50_000_000_000

    def test_buyback_after_loss_converts_new_yield(self, make_protocol, add_yield):
        protocol = make_protocol()
        protocol.purchase("alice", 1000)
        protocol.vaults.transfer(NATIVE_STAKE_VAULT, "external:slashed", 100)
        protocol.purchase("bob", 1000)
        add_yield(protocol, 30)

        result = protocol.buyback()
        assert result.native_amount == 30
        assert protocol.accounting.last_observed_native_balance == 1900


class TestRewardOrdering:
    """Stake joining after a buyback earns nothing from it."""

    def test_late_staker_excluded(self, make_protocol, add_yield):
        protocol = make_protocol()
        protocol.purchase("alice", 1000)
        add_yield(protocol, 200)
        protocol.buyback()
        protocol.purchase("bob", 1000)

        assert protocol.redeem("alice").claimable == 200
        assert protocol.redeem("bob").claimable == 0

        add_yield(protocol, 200)
        protocol.buyback()
        assert protocol.redeem("alice").claimable == 100
        assert protocol.redeem("bob").claimable == 100

        assert protocol.position("alice").total_claimed == 300
        assert protocol.position("bob").total_claimed == 100

    def test_native_stream_credits_stake_present_at_arrival(self, make_protocol, add_yield):
        protocol = make_protocol()
        protocol.purchase("alice", 1000)
        add_yield(protocol, 200)
        protocol.purchase("bob", 1000)

        acc = copy.copy(protocol.accounting)
        alice = protocol.position("alice")
        bob = protocol.position("bob")
        settle_position(acc, alice)
        settle_position(acc, bob)
        assert alice.pending_native == 200
        assert bob.pending_native == 0
