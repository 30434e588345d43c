"""Price history persistence layer.

Provides candle and instrument models and SQLite database management. The
validated store (``simtrade.data.store``), the historical backfill fetcher
(``simtrade.data.fetcher``) and the daily collector
(``simtrade.data.collector``) sit on top of the repository ports and are
imported from their modules directly.
"""

from simtrade.data.database import SimTradeDatabase
from simtrade.data.models import (
    OHLCV,
    CandleWriteResult,
    Instrument,
    InstrumentBackfillResult,
    PriceCandle,
    SourceCandle,
)

__all__ = [
    "CandleWriteResult",
    "Instrument",
    "InstrumentBackfillResult",
    "OHLCV",
    "PriceCandle",
    "SimTradeDatabase",
    "SourceCandle",
]
