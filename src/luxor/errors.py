"""Error taxonomy for the stake and reward engine.

Every engine operation is all-or-nothing: any of these exceptions aborts the
operation before state is committed.
"""


class LuxorError(Exception):
    """Base class for all engine errors."""


class ArithmeticOverflow(LuxorError):
    """A checked integer operation left its working width (or went negative)."""


class DivisionByZero(LuxorError):
    """An index accrual was attempted against a zero denominator."""


class AmountOutOfRange(LuxorError):
    """A purchase priced outside the configured swap bounds."""


class InsufficientFunds(LuxorError):
    """A vault transfer exceeded the source balance."""


class NoYieldAvailable(LuxorError):
    """A buyback found no unconverted native yield."""


class SwapFailed(LuxorError):
    """The external market maker rejected or reverted the swap."""


class Unauthorized(LuxorError):
    """A privileged operation was invoked by a non-admin caller."""


class PurchaseDisabled(LuxorError):
    """Purchasing is switched off in the protocol config."""


class InvalidParam(LuxorError):
    """An administrative action or config update was malformed."""
