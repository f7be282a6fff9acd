"""Trade engine error taxonomy.

Everything raised before a swap is submitted leaves no trade record and no
state change. A settlement timeout is not an error: it produces a ``pending``
record instead.
"""


class TradeError(Exception):
    """Base for trade failures that map to a user-visible rejection."""


class TradeValidationError(TradeError):
    """Malformed request: missing field, unknown side, unparseable amount."""


class PolicyViolationError(TradeError):
    """Rejected by the wallet's trade policy or balance checks."""


class WalletNotFoundError(TradeError):
    pass


class WalletExistsError(TradeError):
    pass


class ChainUnavailableError(TradeError):
    """A pre-trade chain read failed, so the trade could not be evaluated."""


class TradeSubmissionError(TradeError):
    """The swap transaction could not be sent."""


class TradeTimeoutError(TradeError):
    """The request deadline expired before anything was submitted."""
