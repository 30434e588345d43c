"""Shared test fixtures for the simtrade engine."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from simtrade.config import AppSettings, BackfillSettings, PriceSourceSettings
from simtrade.data.database import SimTradeDatabase
from simtrade.data.store import PriceHistoryStore
from simtrade.persistence.memory import (
    InMemoryAccountRepository,
    InMemoryAnalysisRepository,
    InMemoryCandleRepository,
    InMemoryInstrumentRepository,
    InMemoryLedger,
    InMemoryRankingRepository,
    InMemorySnapshotRepository,
)
from simtrade.trading_calendar import TradingCalendar

KST = ZoneInfo("Asia/Seoul")

# Wednesday 2025-11-12, 15:00 in Seoul (06:00 UTC)
PINNED_NOW = datetime(2025, 11, 12, 15, 0, tzinfo=KST)


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (no request pacing, in-memory store)."""
    return AppSettings(
        log_level="DEBUG",
        price_source=PriceSourceSettings(min_request_interval=0.0),
        backfill=BackfillSettings(),
    )


@pytest.fixture
def calendar() -> TradingCalendar:
    """Calendar pinned to Wednesday 2025-11-12 15:00 KST."""
    return TradingCalendar(clock=lambda: PINNED_NOW)


@pytest.fixture
def instruments() -> InMemoryInstrumentRepository:
    return InMemoryInstrumentRepository()


@pytest.fixture
def candles() -> InMemoryCandleRepository:
    return InMemoryCandleRepository()


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def accounts() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def snapshot_repo() -> InMemorySnapshotRepository:
    return InMemorySnapshotRepository()


@pytest.fixture
def rankings() -> InMemoryRankingRepository:
    return InMemoryRankingRepository()


@pytest.fixture
def analysis() -> InMemoryAnalysisRepository:
    return InMemoryAnalysisRepository()


@pytest.fixture
def price_store(
    candles: InMemoryCandleRepository,
    instruments: InMemoryInstrumentRepository,
    calendar: TradingCalendar,
) -> PriceHistoryStore:
    """PriceHistoryStore over the in-memory candle and instrument repositories."""
    return PriceHistoryStore(candles, instruments, calendar)


@pytest_asyncio.fixture
async def database():
    """Connected in-memory SQLite database, closed after the test."""
    db = SimTradeDatabase(":memory:")
    await db.connect()
    yield db
    await db.close()
