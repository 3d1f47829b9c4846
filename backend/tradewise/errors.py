"""Pipeline error types.

Each tick entry point catches these (and anything else) and logs; none of
them is allowed to stop the scheduler.
"""


class TradeWiseError(Exception):
    """Base class for pipeline errors."""


class DataUnavailable(TradeWiseError):
    """Upstream fetch failed or timed out after retries."""


class ParseError(TradeWiseError):
    """Malformed upstream record."""


class DuplicateRecord(TradeWiseError):
    """Record already persisted. Expected, callers skip it."""


class ConfigurationError(TradeWiseError):
    """Missing or inconsistent configuration, raised at startup."""


class PersistenceError(TradeWiseError):
    """A single record could not be written."""


class NotificationError(TradeWiseError):
    """Mail dispatch failed."""


class InvalidTransition(TradeWiseError):
    """Status change out of a terminal state."""
