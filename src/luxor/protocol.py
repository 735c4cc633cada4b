"""Stake protocol - Serialized, all-or-nothing state transitions.

Every public operation:
1. Runs under one lock (a single critical section)
2. Works on copies of GlobalAccounting and the touched positions
3. Pre-checks every planned vault movement: source funds and destination headroom
4. Moves tokens, then commits the copies
5. Emits a notification; a failing sink is logged and never rolls back

Any exception before step 4 leaves accounting, positions and vaults exactly
as they were.
"""

import copy
import logging
import threading
import time
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from .collaborators import (
    NATIVE_STAKE_VAULT,
    NATIVE_TREASURY_VAULT,
    REWARD_TREASURY_VAULT,
    REWARD_VAULT,
    SWAP_POOL,
    LoggingEventSink,
    NullDelegation,
    VaultHoldingsOracle,
    native_account,
    reward_account,
)
from .config.schema import ProtocolConfig
from .engine.accounting import (
    GlobalAccounting,
    UserPosition,
    change_stake,
    open_position,
    staked_sum,
    sync_native_yield,
)
from .engine.admin import (
    ADMIN_POSITION_OWNER,
    EMERGENCY_ACTIONS,
    CollectAdminRewards,
    DeactivateStake,
    RewardSource,
    WithdrawNativeFees,
    WithdrawRewardAssets,
    WithdrawStakedNative,
    apply_manual_purchase,
    blacklist_position,
    collect_admin_rewards,
)
from .engine.buyback import BuybackEngine, BuybackResult
from .engine.fixed_point import AMOUNT_MAX, checked_add
from .engine.pricing import PricingEngine, PurchaseQuote
from .engine.redemption import RedemptionEngine, RedemptionResult
from .errors import (
    AmountOutOfRange,
    InsufficientFunds,
    InvalidParam,
    PurchaseDisabled,
    Unauthorized,
)
from .events import (
    BuybackExecuted,
    ConfigUpdated,
    EmergencyWithdrawn,
    Event,
    Initialized,
    ManualPurchased,
    Purchased,
    RewardsCollected,
    UserBlacklisted,
)

logger = logging.getLogger(__name__)

Transfer = Tuple[str, str, int]


class StakeProtocol:
    """Purchase, buyback, redeem and admin operations over one shared state."""

    def __init__(
        self,
        config: ProtocolConfig,
        vaults,
        swap=None,
        auth=None,
        holdings=None,
        delegation=None,
        events=None,
        clock: Callable[[], int] = None,
        accounting: GlobalAccounting = None,
        positions: Dict[str, UserPosition] = None,
    ):
        """
        Wire the protocol to its collaborators.

        Args:
            config: Protocol parameters
            vaults: Vault ledger (balance/transfer/credit)
            swap: Market maker used by buybacks
            auth: Identity provider; None means "the configured admin only"
            holdings: Current-holdings oracle for forfeiture (defaults to wallet balance)
            delegation: Delegation hook for stake deactivation
            events: Event sink (defaults to logging)
            clock: Returns the current unix time
            accounting: Existing global state (defaults to a fresh aggregate)
            positions: Existing positions keyed by owner
        """
        self.config = config
        self.vaults = vaults
        self.swap = swap
        self.auth = auth
        self.holdings = holdings or VaultHoldingsOracle(vaults)
        self.delegation = delegation or NullDelegation()
        self.events = events or LoggingEventSink()
        self.clock = clock or (lambda: int(time.time()))
        self.accounting = accounting or GlobalAccounting()
        self._positions: Dict[str, UserPosition] = dict(positions or {})
        self._lock = threading.RLock()
        self.redemption = RedemptionEngine()

    @classmethod
    def initialize(cls, config: ProtocolConfig, vaults, **kwargs) -> 'StakeProtocol':
        """
        Create the protocol and take the first native custody observation.

        Balance already sitting in stake custody is not treated as yield.
        """
        protocol = cls(config, vaults, **kwargs)
        now = protocol.clock()
        protocol.accounting.last_observed_native_balance = vaults.balance(NATIVE_STAKE_VAULT)
        protocol.accounting.last_update_time = now
        logger.info("Protocol initialized (admin=%s)", config.admin)
        protocol._emit(Initialized(
            admin=config.admin,
            bonus_rate=config.bonus_rate,
            max_stake_count_to_get_bonus=config.max_stake_count_to_get_bonus,
            min_swap_amount=config.min_swap_amount,
            max_swap_amount=config.max_swap_amount,
            fee_treasury_rate=config.fee_treasury_rate,
            purchase_enabled=config.purchase_enabled,
            redeem_enabled=config.redeem_enabled,
            initial_reward_allocation=config.initial_reward_allocation,
        ))
        return protocol

    # ------------------------------------------------------------------
    # Engines derived from the current config
    # ------------------------------------------------------------------

    @property
    def pricing(self) -> PricingEngine:
        return PricingEngine.from_config(self.config)

    @property
    def buyback_engine(self) -> BuybackEngine:
        return BuybackEngine(fee_treasury_rate=self.config.fee_treasury_rate)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def position(self, owner: str) -> Optional[UserPosition]:
        """Copy of a position, or None if the owner never staked."""
        with self._lock:
            pos = self._positions.get(owner)
            return copy.copy(pos) if pos is not None else None

    def positions(self) -> List[UserPosition]:
        with self._lock:
            return [copy.copy(p) for p in self._positions.values()]

    def snapshot(self) -> Dict[str, int]:
        """Flat view of global state and custody balances."""
        with self._lock:
            data = self.accounting.to_dict()
            data.update({
                'positions': len(self._positions),
                'staked_sum': staked_sum(self._positions.values()),
                'pending_reward_token_sum': sum(
                    p.pending_reward_token for p in self._positions.values()
                ),
                'native_stake_vault': self.vaults.balance(NATIVE_STAKE_VAULT),
                'native_treasury_vault': self.vaults.balance(NATIVE_TREASURY_VAULT),
                'reward_treasury_vault': self.vaults.balance(REWARD_TREASURY_VAULT),
                'reward_vault': self.vaults.balance(REWARD_VAULT),
            })
            return data

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    def purchase(self, owner: str, native_amount: int, min_reward_out: int = 0) -> PurchaseQuote:
        """
        Stake native units and receive reward tokens from the treasury.

        Args:
            owner: Purchaser identity
            native_amount: Native units to stake
            min_reward_out: Slippage floor on reward tokens

        Returns:
            The executed PurchaseQuote

        Raises:
            PurchaseDisabled: If purchasing is switched off
            AmountOutOfRange: If the quote violates bounds
            InsufficientFunds: If the purchaser or treasury cannot cover the trade
        """
        with self._lock:
            if not self.config.purchase_enabled:
                raise PurchaseDisabled("purchasing is disabled")

            now = self.clock()
            accounting = copy.copy(self.accounting)
            position = self._working_position(accounting, owner)

            quote = self.pricing.quote(
                native_amount,
                accounting.total_stake_events,
                treasury_inventory=self.vaults.balance(REWARD_TREASURY_VAULT),
                min_reward_out=min_reward_out,
            )

            # Yield observed before the deposit belongs to existing stakers
            custody = self.vaults.balance(NATIVE_STAKE_VAULT)
            change_stake(accounting, position, native_amount, custody)
            accounting.total_stake_events += 1
            accounting.last_observed_native_balance = checked_add(custody, native_amount, AMOUNT_MAX)
            accounting.last_update_time = now
            position.base_holdings = checked_add(
                position.base_holdings, quote.reward_amount, AMOUNT_MAX
            )

            self._execute_transfers([
                (native_account(owner), NATIVE_STAKE_VAULT, native_amount),
                (REWARD_TREASURY_VAULT, reward_account(owner), quote.reward_amount),
            ])
            self._commit(accounting, position)

        logger.info("%s staked %d native for %d reward tokens (bonus=%s)",
                    owner, native_amount, quote.reward_amount, quote.bonus_applied)
        self._emit(Purchased(
            purchaser=owner,
            native_amount=native_amount,
            reward_amount=quote.reward_amount,
            bonus_applied=quote.bonus_applied,
        ))
        return quote

    def redeem(self, owner: str) -> RedemptionResult:
        """
        Pay out settled reward tokens, forfeiting the share matching any holdings shortfall.

        Safe to call at any time, whatever ``redeem_enabled`` says; with
        nothing pending it moves zero tokens.

        Raises:
            InsufficientFunds: If the reward vault cannot cover the payout
        """
        with self._lock:
            current_holdings = self.holdings.holdings(owner)
            if owner not in self._positions:
                return RedemptionResult(claimable=0, forfeited=0, current_holdings=current_holdings)

            accounting = copy.copy(self.accounting)
            position = copy.copy(self._positions[owner])
            result = self.redemption.redeem(accounting, position, current_holdings)
            if result.total > 0:
                accounting.last_update_time = self.clock()

            self._execute_transfers([
                (REWARD_VAULT, reward_account(owner), result.claimable),
                (REWARD_VAULT, REWARD_TREASURY_VAULT, result.forfeited),
            ])
            self._commit(accounting, position)

        if result.total > 0:
            logger.info("%s redeemed %d reward tokens (%d forfeited)",
                        owner, result.claimable, result.forfeited)
        self._emit(RewardsCollected(
            collector=owner,
            reward_token_collected=result.claimable,
            reward_token_forfeited=result.forfeited,
        ))
        return result

    # ------------------------------------------------------------------
    # Operator operations
    # ------------------------------------------------------------------

    def buyback(self) -> BuybackResult:
        """
        Convert unconverted native yield into reward tokens for stakers.

        Raises:
            NoYieldAvailable: If custody has not grown since the last conversion
            DivisionByZero: If nothing is staked
            SwapFailed: If the market maker rejects the swap
        """
        if self.swap is None:
            raise InvalidParam("no swap collaborator configured")

        with self._lock:
            accounting = copy.copy(self.accounting)
            result = self.buyback_engine.execute(
                accounting,
                self.vaults.balance(NATIVE_STAKE_VAULT),
                self.swap,
                self.clock(),
            )
            self._execute_transfers(
                [(NATIVE_STAKE_VAULT, SWAP_POOL, result.native_amount)],
                credits=[
                    (REWARD_VAULT, result.reward_portion),
                    (REWARD_TREASURY_VAULT, result.treasury_fee),
                ],
            )
            self._commit(accounting)

        logger.info("Buyback converted %d native into %d reward tokens (treasury fee %d)",
                    result.native_amount, result.reward_token_out, result.treasury_fee)
        self._emit(BuybackExecuted(
            native_amount=result.native_amount,
            reward_token_bought=result.reward_token_out,
            fee_to_treasury=result.treasury_fee,
        ))
        return result

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def manual_purchase(self, caller: str, owner: str, reward_amount: int, native_amount: int) -> None:
        """
        Record a purchase priced outside the protocol; the admin funds the stake.

        Raises:
            Unauthorized: If ``caller`` is not an admin
            AmountOutOfRange: If the native amount is not positive
        """
        with self._lock:
            self._require_admin(caller)
            if native_amount <= 0 or reward_amount < 0:
                raise AmountOutOfRange(
                    f"manual purchase needs positive native and non-negative reward amounts, "
                    f"got {native_amount} / {reward_amount}"
                )

            accounting = copy.copy(self.accounting)
            position = self._working_position(accounting, owner)
            custody = self.vaults.balance(NATIVE_STAKE_VAULT)
            apply_manual_purchase(accounting, position, native_amount, reward_amount, custody)
            accounting.last_observed_native_balance = checked_add(custody, native_amount, AMOUNT_MAX)
            accounting.last_update_time = self.clock()

            self._execute_transfers([(native_account(caller), NATIVE_STAKE_VAULT, native_amount)])
            self._commit(accounting, position)

        logger.info("Admin %s recorded manual purchase for %s: %d native, %d reward tokens",
                    caller, owner, native_amount, reward_amount)
        self._emit(ManualPurchased(
            purchaser=owner,
            native_amount=native_amount,
            reward_amount=reward_amount,
        ))

    def emergency_withdraw(self, caller: str, action) -> int:
        """
        Run one privileged escape hatch.

        Args:
            caller: Admin identity
            action: One of the emergency action variants

        Returns:
            Units moved (0 for DeactivateStake)

        Raises:
            Unauthorized: If ``caller`` is not an admin
            InvalidParam: If ``action`` is not a known variant
        """
        with self._lock:
            self._require_admin(caller)
            if not isinstance(action, EMERGENCY_ACTIONS):
                raise InvalidParam(f"unknown emergency action {action!r}")

            accounting = copy.copy(self.accounting)
            touched: List[UserPosition] = []

            if isinstance(action, WithdrawRewardAssets):
                source = (REWARD_TREASURY_VAULT if action.source is RewardSource.TREASURY
                          else REWARD_VAULT)
                amount = self.vaults.balance(source)
                transfers = [(source, reward_account(caller), amount)]
            elif isinstance(action, WithdrawNativeFees):
                amount = self.vaults.balance(NATIVE_TREASURY_VAULT)
                transfers = [(NATIVE_TREASURY_VAULT, native_account(caller), amount)]
            elif isinstance(action, DeactivateStake):
                amount = 0
                transfers = []
                self.delegation.deactivate()
                accounting.stake_deactivated = True
            elif isinstance(action, WithdrawStakedNative):
                amount = action.amount
                if amount <= 0:
                    raise InvalidParam(f"withdrawal amount must be positive, got {amount}")
                balance = self.vaults.balance(NATIVE_STAKE_VAULT)
                if amount > balance:
                    raise InsufficientFunds(f"stake custody holds {balance}, withdrawal needs {amount}")
                # Record yield first so the withdrawal is not misread as a loss
                sync_native_yield(accounting, balance)
                accounting.last_observed_native_balance = max(
                    0, accounting.last_observed_native_balance - amount
                )
                transfers = [(NATIVE_STAKE_VAULT, native_account(caller), amount)]
            else:
                admin_position = self._working_position(accounting, ADMIN_POSITION_OWNER)
                amount = collect_admin_rewards(accounting, admin_position)
                transfers = [(REWARD_VAULT, REWARD_TREASURY_VAULT, amount)]
                touched.append(admin_position)

            accounting.last_update_time = self.clock()
            self._execute_transfers(transfers)
            self._commit(accounting, *touched)

        logger.warning("Emergency action %s by %s moved %d units",
                       type(action).__name__, caller, amount)
        self._emit(EmergencyWithdrawn(action=type(action).__name__, amount=amount))
        return amount

    def blacklist(self, caller: str, owner: str) -> Tuple[int, int]:
        """
        Move a participant's stake and pending rewards to the admin position.

        Returns:
            (stake moved, reward tokens forfeited)
        """
        with self._lock:
            self._require_admin(caller)
            if owner == ADMIN_POSITION_OWNER or owner not in self._positions:
                raise InvalidParam(f"no blacklistable position for {owner!r}")

            accounting = copy.copy(self.accounting)
            position = copy.copy(self._positions[owner])
            admin_position = self._working_position(accounting, ADMIN_POSITION_OWNER)
            stake, forfeited = blacklist_position(accounting, position, admin_position)
            accounting.last_update_time = self.clock()
            self._commit(accounting, position, admin_position)

        logger.warning("Blacklisted %s: %d stake and %d pending reward tokens moved to admin",
                       owner, stake, forfeited)
        self._emit(UserBlacklisted(user=owner, stake_blacklisted=stake,
                                   reward_token_forfeited=forfeited))
        return stake, forfeited

    def update_config(self, caller: str, **changes) -> ProtocolConfig:
        """
        Change protocol parameters.

        Raises:
            Unauthorized: If ``caller`` is not an admin
            InvalidParam: If a field is unknown or the result fails validation
        """
        with self._lock:
            self._require_admin(caller)
            unknown = set(changes) - set(ProtocolConfig.model_fields)
            if unknown:
                raise InvalidParam(f"unknown config fields: {sorted(unknown)}")
            try:
                new_config = ProtocolConfig.model_validate({**self.config.model_dump(), **changes})
            except ValidationError as exc:
                raise InvalidParam(str(exc)) from exc
            self.config = new_config

        logger.info("Config updated by %s: %s", caller, sorted(changes))
        self._emit(ConfigUpdated(
            admin=new_config.admin,
            min_swap_amount=new_config.min_swap_amount,
            max_swap_amount=new_config.max_swap_amount,
            fee_treasury_rate=new_config.fee_treasury_rate,
            purchase_enabled=new_config.purchase_enabled,
            redeem_enabled=new_config.redeem_enabled,
        ))
        return new_config

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_admin(self, caller: str) -> bool:
        if self.auth is None:
            return caller == self.config.admin
        return self.auth.is_admin(caller)

    def _require_admin(self, caller: str) -> None:
        if not self._is_admin(caller):
            raise Unauthorized(f"{caller!r} is not an admin")

    def _working_position(self, accounting: GlobalAccounting, owner: str) -> UserPosition:
        existing = self._positions.get(owner)
        if existing is None:
            return open_position(accounting, owner)
        return copy.copy(existing)

    def _execute_transfers(
        self,
        transfers: Iterable[Transfer],
        credits: Iterable[Tuple[str, int]] = (),
    ) -> None:
        """
        Check the whole batch against current balances, then move tokens.

        Every source must cover its total outflow and every destination must
        have room for its total inflow; otherwise nothing moves.

        Raises:
            InsufficientFunds: If a source cannot cover its outflow
            ArithmeticOverflow: If a destination would exceed AMOUNT_MAX
        """
        transfers = [t for t in transfers if t[2] > 0]
        credits = [c for c in credits if c[1] > 0]
        outflows: Dict[str, int] = defaultdict(int)
        inflows: Dict[str, int] = defaultdict(int)
        for source, destination, amount in transfers:
            outflows[source] += amount
            inflows[destination] += amount
        for account, amount in credits:
            inflows[account] += amount

        for source, amount in outflows.items():
            available = self.vaults.balance(source)
            if available < amount:
                raise InsufficientFunds(f"{source} holds {available}, operation needs {amount}")
        for destination, amount in inflows.items():
            checked_add(self.vaults.balance(destination), amount, AMOUNT_MAX)

        for source, destination, amount in transfers:
            self.vaults.transfer(source, destination, amount)
        for account, amount in credits:
            self.vaults.credit(account, amount)

    def _commit(self, accounting: GlobalAccounting, *positions: UserPosition) -> None:
        self.accounting = accounting
        for position in positions:
            self._positions[position.owner] = position

    def _emit(self, event: Event) -> None:
        try:
            self.events.emit(event)
        except Exception:
            logger.exception("Event sink failed to emit %s", event.name)
