"""Exception types shared by the stores, the fetcher and the delivery layers."""


class CoinPulseError(Exception):
    """Base class for all errors raised by the bot."""


class NotFoundError(CoinPulseError):
    """Unknown coin, coin without stored data yet, or unknown user."""


class UpstreamError(CoinPulseError):
    """The price API could not be reached or returned unusable data."""


class StorageError(CoinPulseError):
    """A database read or write failed."""


class ValidationError(CoinPulseError):
    """User input was rejected before reaching the stores."""


class ShutdownTimeoutError(CoinPulseError):
    """Resources did not close within the shutdown deadline."""
