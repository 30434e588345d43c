"""External price-quote source: abstract port, pacing and Yahoo Finance adapter."""

from simtrade.quotes.client import PriceQuoteSource
from simtrade.quotes.rate_limiter import RateLimiter
from simtrade.quotes.types import Quote

__all__ = [
    "PriceQuoteSource",
    "Quote",
    "RateLimiter",
]
