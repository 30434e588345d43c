"""Persistence ports and their SQLite / in-memory implementations."""

from simtrade.persistence.interfaces import (
    AccountRepository,
    AnalysisRepository,
    CandleRepository,
    InstrumentRepository,
    LedgerReader,
    RankingRepository,
    SnapshotRepository,
)

__all__ = [
    "AccountRepository",
    "AnalysisRepository",
    "CandleRepository",
    "InstrumentRepository",
    "LedgerReader",
    "RankingRepository",
    "SnapshotRepository",
]
