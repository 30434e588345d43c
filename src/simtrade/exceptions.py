"""Custom exceptions for the valuation and ranking engine.

All domain exceptions live here to avoid circular imports between the
data, portfolio, ranking and backfill packages. Batch runners turn these
into per-item results; only unexpected faults escape a batch.
"""


class SimTradeError(Exception):
    """Base exception for all engine errors."""


class ValidationError(SimTradeError):
    """Raised for malformed dates, periods or amounts, before any write."""


class NotFoundError(SimTradeError):
    """Raised when a user, portfolio or instrument does not exist."""


class DataIntegrityError(SimTradeError):
    """Raised when stored or fetched data violates an invariant (e.g. OHLC bounds)."""


class ExternalServiceError(SimTradeError):
    """Raised when the external price source fails or times out."""


class ConflictError(SimTradeError):
    """Raised on a duplicate write that upsert semantics could not absorb."""
