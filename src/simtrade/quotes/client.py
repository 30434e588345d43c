"""Abstract price-quote source interface.

Defines the contract for all market-data providers. Fetchers and collectors
depend only on this interface, keeping provider-specific details isolated in
the concrete implementation.
"""

from abc import ABC, abstractmethod
from datetime import date

from simtrade.data.models import SourceCandle
from simtrade.quotes.types import Quote


class PriceQuoteSource(ABC):
    """Abstract base class for external price-quote sources."""

    @abstractmethod
    async def fetch_daily_ohlcv(
        self, instrument_id: str, start: date, end: date
    ) -> list[SourceCandle]:
        """Fetch daily bars in ``[start, end]``, oldest first.

        Bars are returned unvalidated. Raises ExternalServiceError on provider failure.
        """
        ...

    @abstractmethod
    async def fetch_quote(self, instrument_id: str) -> Quote:
        """Fetch the current intraday quote. Raises ExternalServiceError on failure."""
        ...

    async def close(self) -> None:
        """Release provider resources. No-op by default."""
        return None
