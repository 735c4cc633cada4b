"""Reward-accounting engines: indices, pricing, buyback, redemption, admin overrides."""

from .accounting import (
    GlobalAccounting,
    UserPosition,
    change_stake,
    open_position,
    settle_position,
    staked_sum,
    sync_native_yield,
)
from .buyback import BuybackEngine, BuybackResult
from .fixed_point import AMOUNT_MAX, RATE_DENOMINATOR, SCALE, WORD_MAX, FixedPointIndex
from .pricing import PricingEngine, PurchaseQuote
from .redemption import RedemptionEngine, RedemptionResult

__all__ = [
    "AMOUNT_MAX",
    "RATE_DENOMINATOR",
    "SCALE",
    "WORD_MAX",
    "BuybackEngine",
    "BuybackResult",
    "FixedPointIndex",
    "GlobalAccounting",
    "PricingEngine",
    "PurchaseQuote",
    "RedemptionEngine",
    "RedemptionResult",
    "UserPosition",
    "change_stake",
    "open_position",
    "settle_position",
    "staked_sum",
    "sync_native_yield",
]
