"""Tests for forfeiture-aware redemption."""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from luxor.collaborators import MARKET, REWARD_TREASURY_VAULT, REWARD_VAULT, reward_account
from luxor.engine.accounting import GlobalAccounting, UserPosition
from luxor.engine.fixed_point import SCALE
from luxor.engine.redemption import RedemptionEngine
from luxor.events import RewardsCollected

from conftest import TREASURY


class TestForfeiture:
    """Forfeiture arithmetic."""

    def test_proportional_to_shortfall(self):
        assert RedemptionEngine.compute_forfeiture(500, 1000, 800) == 100

    def test_no_shortfall(self):
        assert RedemptionEngine.compute_forfeiture(500, 1000, 1000) == 0
        assert RedemptionEngine.compute_forfeiture(500, 1000, 5000) == 0

    def test_sold_everything(self):
        assert RedemptionEngine.compute_forfeiture(500, 1000, 0) == 500

    def test_no_baseline(self):
        assert RedemptionEngine.compute_forfeiture(500, 0, 0) == 0

    def test_floors(self):
        assert RedemptionEngine.compute_forfeiture(10, 3, 2) == 3


class TestRedemptionEngine:
    """Engine-level redemption against hand-built state."""

    def test_redeem_settles_then_forfeits(self):
        acc = GlobalAccounting(total_staked=1000, reward_token_index=SCALE // 2)
        position = UserPosition(owner="alice", staked_amount=1000, base_holdings=1000)

        result = RedemptionEngine().redeem(acc, position, current_holdings=800)

        assert (result.claimable, result.forfeited) == (400, 100)
        assert position.pending_reward_token == 0
        assert position.reward_token_index_checkpoint == SCALE // 2
        assert position.base_holdings == 800
        assert position.total_claimed == 400
        assert position.total_forfeited == 100
        assert acc.total_reward_token_claimed == 400
        assert acc.total_reward_token_forfeited == 100


class TestRedeem:
    """Redemption through the protocol."""

    @pytest.fixture
    def funded(self, make_protocol, add_yield):
        """Alice holds 1000 reward tokens and has 500 settled through a buyback."""
        protocol = make_protocol()
        protocol.purchase("alice", 1000)
        add_yield(protocol, 500)
        protocol.buyback()
        return protocol

    def test_full_holder_claims_everything(self, funded):
        result = funded.redeem("alice")
        assert (result.claimable, result.forfeited) == (500, 0)
        assert funded.vaults.balance(reward_account("alice")) == 1500
        assert funded.vaults.balance(REWARD_VAULT) == 0

    def test_seller_forfeits_share(self, funded):
        funded.vaults.transfer(reward_account("alice"), MARKET, 200)

        result = funded.redeem("alice")

        assert result.current_holdings == 800
        assert (result.claimable, result.forfeited) == (400, 100)
        assert funded.vaults.balance(reward_account("alice")) == 1200
        assert funded.vaults.balance(REWARD_TREASURY_VAULT) == TREASURY - 1000 + 100
        assert funded.vaults.balance(REWARD_VAULT) == 0
        assert funded.position("alice").base_holdings == 800

        event = funded.events.of_type(RewardsCollected)[-1]
        assert (event.reward_token_collected, event.reward_token_forfeited) == (400, 100)

    def test_second_redeem_is_noop(self, funded):
        funded.redeem("alice")
        before = funded.snapshot()
        result = funded.redeem("alice")
        assert result.total == 0
        assert funded.snapshot() == before

    def test_unknown_owner(self, funded):
        result = funded.redeem("mallory")
        assert result.total == 0
        assert funded.position("mallory") is None

    def test_redeem_ignores_redeem_flag(self, make_protocol, add_yield):
        """Settled rewards can always be withdrawn."""
        protocol = make_protocol(redeem_enabled=False)
        protocol.purchase("alice", 1000)
        add_yield(protocol, 500)
        protocol.buyback()
        assert protocol.redeem("alice").claimable == 500

    def test_pending_survives_new_purchase(self, funded):
        """Topping up settles first; the earlier rewards stay pending."""
        funded.purchase("alice", 1000)
        position = funded.position("alice")
        assert position.pending_reward_token == 500
        assert position.staked_amount == 2000
        assert funded.redeem("alice").claimable == 500
