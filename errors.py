"""Exception hierarchy shared by the feed, scanner and execution engine."""


class EngineError(Exception):
    """Base class for every error raised by the engine."""


class FeedConnectionError(EngineError, ConnectionError):
    """No upstream price source could be reached."""


class QuoteServiceUnreachable(EngineError, ConnectionError):
    """The quote service cannot be reached at the connection level."""


class NoDataError(EngineError):
    """Prices were requested before any tick was received."""


class QuoteUnavailable(EngineError):
    """A single quote request failed or returned an unusable payload."""


class CapacityExceeded(EngineError):
    """The engine already holds the maximum number of open positions."""


class InsufficientFunds(EngineError):
    """The wallet cannot cover the gas cost of a trade."""


class InvalidAddress(EngineError):
    """A wallet address failed validation."""


class UnknownStrategy(EngineError, KeyError):
    """No strategy profile is registered under the requested name."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class OpportunityNotAvailable(EngineError, KeyError):
    """The opportunity was already consumed or never existed."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class InvalidTransition(EngineError):
    """A position was asked to leave a terminal state."""


class DuplicateCompletion(EngineError):
    """The statistics aggregator saw the same position twice."""


class BalanceUnavailable(EngineError):
    """The wallet balance could not be read from the RPC node."""
