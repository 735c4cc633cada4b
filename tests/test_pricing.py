"""Tests for purchase pricing and the purchase operation."""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from luxor.collaborators import (
    NATIVE_STAKE_VAULT,
    REWARD_TREASURY_VAULT,
    native_account,
    reward_account,
)
from luxor.engine.pricing import PricingEngine
from luxor.errors import AmountOutOfRange, InsufficientFunds, PurchaseDisabled
from luxor.events import Purchased

from conftest import TREASURY, USER_NATIVE


@pytest.fixture
def engine():
    """2 native buys 1 reward, +10% for the first five purchases, quotes within [10, 1000]."""
    return PricingEngine(
        exchange_rate_native=2,
        exchange_rate_reward=1,
        bonus_rate=100_000,
        max_stake_count_to_get_bonus=5,
        min_swap_amount=10,
        max_swap_amount=1000,
    )


class TestQuote:
    """Pricing without side effects."""

    def test_bonus_phase(self, engine):
        quote = engine.quote(200, total_stake_events=0)
        assert quote.base_reward_amount == 100
        assert quote.reward_amount == 110
        assert quote.bonus_applied

    def test_bonus_boundary(self, engine):
        """The purchase made at count max-1 still gets the bonus; the next one does not."""
        assert engine.quote(200, total_stake_events=4).reward_amount == 110
        after = engine.quote(200, total_stake_events=5)
        assert after.reward_amount == 100
        assert not after.bonus_applied

    def test_quote_below_minimum(self, engine):
        with pytest.raises(AmountOutOfRange):
            engine.quote(10, total_stake_events=10)

    def test_quote_above_maximum(self, engine):
        with pytest.raises(AmountOutOfRange):
            engine.quote(2200, total_stake_events=10)

    def test_non_positive_amount(self, engine):
        with pytest.raises(AmountOutOfRange):
            engine.quote(0, total_stake_events=0)
        with pytest.raises(AmountOutOfRange):
            engine.quote(-5, total_stake_events=0)

    def test_slippage_floor(self, engine):
        assert engine.quote(200, 10, min_reward_out=100).reward_amount == 100
        with pytest.raises(AmountOutOfRange):
            engine.quote(200, 10, min_reward_out=101)

    def test_inventory_pricing_after_bonus(self):
        """Half the allocation sold means half the tokens per native unit."""
        engine = PricingEngine(1, 1, inventory_pricing=True, initial_reward_allocation=1000)
        assert engine.quote(100, 0, treasury_inventory=500).reward_amount == 50
        assert engine.quote(100, 0, treasury_inventory=1000).reward_amount == 100

    def test_rejects_zero_rates(self):
        with pytest.raises(ValueError):
            PricingEngine(0, 1)


class TestPurchase:
    """Purchase through the protocol."""

    def test_purchase_bookkeeping(self, make_protocol):
        protocol = make_protocol()
        quote = protocol.purchase("alice", 1000)

        assert quote.reward_amount == 1000
        acc = protocol.accounting
        assert acc.total_staked == 1000
        assert acc.total_stake_events == 1
        assert acc.last_observed_native_balance == 1000

        position = protocol.position("alice")
        assert position.staked_amount == 1000
        assert position.base_holdings == 1000

        vaults = protocol.vaults
        assert vaults.balance(NATIVE_STAKE_VAULT) == 1000
        assert vaults.balance(native_account("alice")) == USER_NATIVE - 1000
        assert vaults.balance(reward_account("alice")) == 1000
        assert vaults.balance(REWARD_TREASURY_VAULT) == TREASURY - 1000

        events = protocol.events.of_type(Purchased)
        assert len(events) == 1
        assert events[0].purchaser == "alice"
        assert events[0].reward_amount == 1000

    def test_bonus_tier_across_purchases(self, make_protocol):
        """Six purchases with a five-purchase bonus tier."""
        protocol = make_protocol(bonus_rate=100_000, max_stake_count_to_get_bonus=5)
        rewards = [protocol.purchase("alice", 1000).reward_amount for _ in range(6)]
        assert rewards == [1100] * 5 + [1000]
        assert protocol.position("alice").base_holdings == 6500

    def test_rejected_quote_changes_nothing(self, make_protocol):
        protocol = make_protocol(min_swap_amount=10, max_swap_amount=1000)
        before = protocol.snapshot()
        with pytest.raises(AmountOutOfRange):
            protocol.purchase("alice", 2000)
        assert protocol.snapshot() == before
        assert protocol.position("alice") is None
        assert protocol.vaults.balance(native_account("alice")) == USER_NATIVE

    def test_purchase_disabled(self, make_protocol):
        protocol = make_protocol(purchase_enabled=False)
        with pytest.raises(PurchaseDisabled):
            protocol.purchase("alice", 1000)

    def test_purchaser_cannot_pay(self, make_protocol):
        protocol = make_protocol()
        before = protocol.snapshot()
        with pytest.raises(InsufficientFunds):
            protocol.purchase("alice", USER_NATIVE + 1)
        assert protocol.snapshot() == before

    def test_treasury_cannot_deliver(self, make_protocol):
        protocol = make_protocol(treasury=500)
        with pytest.raises(InsufficientFunds):
            protocol.purchase("alice", 1000)
        assert protocol.accounting.total_staked == 0
        assert protocol.vaults.balance(native_account("alice")) == USER_NATIVE
        assert protocol.vaults.balance(REWARD_TREASURY_VAULT) == 500

    def test_yield_before_deposit_goes_to_existing_stakers(self, make_protocol, add_yield):
        """Custody growth observed before bob's deposit is credited to alice only."""
        protocol = make_protocol()
        protocol.purchase("alice", 1000)
        add_yield(protocol, 100)
        protocol.purchase("bob", 1000)

        acc = protocol.accounting
        assert acc.total_native_rewards_accrued == 100
        assert acc.native_reward_index == 10 ** 11
        assert acc.last_observed_native_balance == 2100
        assert protocol.position("bob").native_reward_index_checkpoint == 10 ** 11
