"""External collaborators the engine depends on, plus in-memory reference versions.

The engine only reads and moves vault balances, asks the market maker for a
swap, asks the identity provider whether a caller is an admin, and emits
notifications. The in-memory classes below are what the simulator and the
tests run against.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Protocol, runtime_checkable

from .engine.fixed_point import AMOUNT_MAX, RATE_DENOMINATOR, checked_add, mul_div
from .errors import InsufficientFunds, SwapFailed
from .events import Event

logger = logging.getLogger(__name__)

# Protocol custody accounts
NATIVE_STAKE_VAULT = "vault:native_stake"  # Delegated native stake plus accrued yield
NATIVE_TREASURY_VAULT = "vault:native_treasury"
REWARD_TREASURY_VAULT = "vault:reward_treasury"  # Sale inventory, fees, forfeitures
REWARD_VAULT = "vault:reward"  # Bought-back tokens owed to stakers
SWAP_POOL = "external:swap_pool"  # Counterparty of buyback swaps
MARKET = "external:market"  # Where simulated holders sell tokens


def native_account(owner: str) -> str:
    """Native-asset wallet of a participant."""
    return f"{owner}:native"


def reward_account(owner: str) -> str:
    """Reward-token wallet of a participant."""
    return f"{owner}:reward"


@runtime_checkable
class AuthProvider(Protocol):
    def is_admin(self, caller: str) -> bool:
        ...


@runtime_checkable
class VaultLedger(Protocol):
    def balance(self, account: str) -> int:
        ...

    def transfer(self, source: str, destination: str, amount: int) -> None:
        ...

    def credit(self, account: str, amount: int) -> None:
        ...


@runtime_checkable
class SwapProvider(Protocol):
    def swap(self, native_amount: int) -> int:
        ...


@runtime_checkable
class DelegationHook(Protocol):
    def deactivate(self) -> None:
        ...


@runtime_checkable
class HoldingsOracle(Protocol):
    def holdings(self, owner: str) -> int:
        ...


@runtime_checkable
class EventSink(Protocol):
    def emit(self, event: Event) -> None:
        ...


class StaticAuth:
    """Fixed set of admin identities."""

    def __init__(self, admins: Iterable[str]):
        self.admins = set(admins)

    def is_admin(self, caller: str) -> bool:
        return caller in self.admins


class InMemoryVaults:
    """Single-asset balances keyed by account name."""

    def __init__(self, balances: Dict[str, int] = None):
        self._balances: Dict[str, int] = defaultdict(int)
        for account, amount in (balances or {}).items():
            self.credit(account, amount)

    def balance(self, account: str) -> int:
        return self._balances.get(account, 0)

    def transfer(self, source: str, destination: str, amount: int) -> None:
        """
        Move ``amount`` from ``source`` to ``destination``.

        Both balances are validated before either is written.

        Raises:
            InsufficientFunds: If ``source`` holds less than ``amount``
            ArithmeticOverflow: If ``destination`` would exceed AMOUNT_MAX
        """
        if amount < 0:
            raise ValueError(f"transfer amount must be non-negative, got {amount}")
        if amount == 0 or source == destination:
            return
        available = self.balance(source)
        if available < amount:
            raise InsufficientFunds(f"{source} holds {available}, transfer needs {amount}")
        credited = checked_add(self.balance(destination), amount, AMOUNT_MAX)
        self._balances[source] = available - amount
        self._balances[destination] = credited

    def credit(self, account: str, amount: int) -> None:
        """External inflow (validator yield, swap proceeds, funding)."""
        if amount < 0:
            raise ValueError(f"credit amount must be non-negative, got {amount}")
        self._balances[account] = checked_add(self.balance(account), amount, AMOUNT_MAX)

    def snapshot(self) -> Dict[str, int]:
        return {k: v for k, v in self._balances.items() if v}


class ConstantProductSwap:
    """x*y=k native/reward pool with an input-side trade fee.

    Quotes exact-input swaps the way a constant-product AMM does:
    out = in_after_fee * reward_reserve / (native_reserve + in_after_fee)
    """

    def __init__(self, native_reserve: int, reward_reserve: int, trade_fee_rate: int = 2500):
        """
        Initialize pool.

        Args:
            native_reserve: Native units in the pool
            reward_reserve: Reward tokens in the pool
            trade_fee_rate: Input fee per RATE_DENOMINATOR
        """
        if native_reserve <= 0 or reward_reserve <= 0:
            raise ValueError("pool reserves must be positive")
        self.native_reserve = native_reserve
        self.reward_reserve = reward_reserve
        self.trade_fee_rate = trade_fee_rate
        self.fees_collected = 0

    @classmethod
    def from_config(cls, pool) -> 'ConstantProductSwap':
        return cls(pool.native_reserve, pool.reward_reserve, pool.trade_fee_rate)

    def trade_fee(self, native_amount: int) -> int:
        """Fee on the input, rounded up."""
        return -(-native_amount * self.trade_fee_rate // RATE_DENOMINATOR)

    def quote(self, native_amount: int) -> int:
        """Reward tokens out for an exact native input (no state change)."""
        if native_amount <= 0:
            raise SwapFailed(f"swap input must be positive, got {native_amount}")
        in_after_fee = native_amount - self.trade_fee(native_amount)
        if in_after_fee <= 0:
            raise SwapFailed("swap input is consumed entirely by fees")
        return mul_div(in_after_fee, self.reward_reserve, self.native_reserve + in_after_fee)

    def swap(self, native_amount: int) -> int:
        """
        Execute an exact-input swap.

        Raises:
            SwapFailed: If the input is unusable or the output rounds to zero
        """
        out = self.quote(native_amount)
        if out <= 0 or out >= self.reward_reserve:
            raise SwapFailed(f"swap of {native_amount} native yields unusable output {out}")
        fee = self.trade_fee(native_amount)
        new_native = self.native_reserve + native_amount - fee
        new_reward = self.reward_reserve - out
        if new_native * new_reward < self.native_reserve * self.reward_reserve:
            raise SwapFailed("constant product decreased")
        self.native_reserve = new_native
        self.reward_reserve = new_reward
        self.fees_collected += fee
        return out


class NullDelegation:
    """Delegation hook that only records deactivation requests."""

    def __init__(self):
        self.deactivated = False

    def deactivate(self) -> None:
        self.deactivated = True


class VaultHoldingsOracle:
    """Current holdings = the participant's reward-token wallet balance."""

    def __init__(self, vaults: VaultLedger):
        self.vaults = vaults

    def holdings(self, owner: str) -> int:
        return self.vaults.balance(reward_account(owner))


class LoggingEventSink:
    """Writes every notification to the log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level

    def emit(self, event: Event) -> None:
        logger.log(self.level, "%s %s", event.name, event.to_dict())


class RecordingEventSink:
    """Keeps notifications in memory."""

    def __init__(self):
        self.events: List[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[Event]:
        return [e for e in self.events if isinstance(e, event_type)]
