"""Tests for HistoricalBackfillFetcher.

The quote source is an AsyncMock; the rate limiter runs with a zero
interval so tests never sleep.
"""

import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from simtrade.data.fetcher import NO_DATA_ERROR, HistoricalBackfillFetcher
from simtrade.data.models import OHLCV, Instrument, SourceCandle
from simtrade.data.store import PriceHistoryStore
from simtrade.exceptions import ExternalServiceError, ValidationError
from simtrade.models import ItemStatus
from simtrade.persistence.memory import InMemoryInstrumentRepository
from simtrade.quotes.rate_limiter import RateLimiter
from simtrade.trading_calendar import TradingCalendar

TODAY = date(2025, 11, 12)


def _source_candle(day: date, close: str = "100") -> SourceCandle:
    price = Decimal(close)
    return SourceCandle(day, OHLCV(price, price, price, price, 10))


@pytest.fixture
def source() -> AsyncMock:
    """Quote source mock returning two valid bars by default."""
    mock = AsyncMock()
    mock.fetch_daily_ohlcv.return_value = [
        _source_candle(date(2025, 11, 11)),
        _source_candle(date(2025, 11, 12), "101"),
    ]
    return mock


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(min_interval=0)


@pytest.fixture
def fetcher(
    source: AsyncMock,
    price_store: PriceHistoryStore,
    instruments: InMemoryInstrumentRepository,
    calendar: TradingCalendar,
    limiter: RateLimiter,
) -> HistoricalBackfillFetcher:
    return HistoricalBackfillFetcher(source, price_store, instruments, calendar, limiter)


async def _register(instruments: InMemoryInstrumentRepository, *ids: str) -> None:
    for instrument_id in ids:
        await instruments.upsert_instrument(Instrument(instrument_id, f"Name {instrument_id}"))


class TestBackfillInstrument:
    @pytest.mark.asyncio
    async def test_inserts_every_valid_bar(
        self,
        fetcher: HistoricalBackfillFetcher,
        instruments: InMemoryInstrumentRepository,
        price_store: PriceHistoryStore,
        source: AsyncMock,
    ) -> None:
        await _register(instruments, "005930")

        result = await fetcher.backfill_instrument("005930", day_count=30)

        assert result.ok
        assert result.inserted == 2
        assert result.skipped == 0
        assert result.name == "Name 005930"
        source.fetch_daily_ohlcv.assert_awaited_once_with("005930", date(2025, 10, 13), TODAY)
        assert await price_store.count_candles_on(TODAY) == 1

    @pytest.mark.asyncio
    async def test_default_day_count_is_a_year(
        self,
        fetcher: HistoricalBackfillFetcher,
        instruments: InMemoryInstrumentRepository,
        source: AsyncMock,
    ) -> None:
        await _register(instruments, "005930")

        result = await fetcher.backfill_instrument("005930")

        assert result.days_requested == 365
        source.fetch_daily_ohlcv.assert_awaited_once_with("005930", date(2024, 11, 12), TODAY)

    @pytest.mark.asyncio
    async def test_invalid_bars_are_counted_as_skipped(
        self,
        fetcher: HistoricalBackfillFetcher,
        instruments: InMemoryInstrumentRepository,
        source: AsyncMock,
    ) -> None:
        await _register(instruments, "005930")
        source.fetch_daily_ohlcv.return_value = [
            _source_candle(date(2025, 11, 11)),
            SourceCandle(date(2025, 11, 12), OHLCV(None, None, None, None, 0)),
        ]

        result = await fetcher.backfill_instrument("005930", day_count=5)

        assert result.ok
        assert result.inserted == 1
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_empty_response_is_an_error(
        self,
        fetcher: HistoricalBackfillFetcher,
        instruments: InMemoryInstrumentRepository,
        source: AsyncMock,
    ) -> None:
        await _register(instruments, "005930")
        source.fetch_daily_ohlcv.return_value = []

        result = await fetcher.backfill_instrument("005930", day_count=5)

        assert not result.ok
        assert result.errors == [NO_DATA_ERROR]
        assert result.inserted == 0

    @pytest.mark.asyncio
    async def test_source_failure_is_recorded_not_raised(
        self,
        fetcher: HistoricalBackfillFetcher,
        instruments: InMemoryInstrumentRepository,
        source: AsyncMock,
    ) -> None:
        await _register(instruments, "005930")
        source.fetch_daily_ohlcv.side_effect = ExternalServiceError("timeout")

        result = await fetcher.backfill_instrument("005930", day_count=5)

        assert result.errors == ["ExternalServiceError: timeout"]

    @pytest.mark.asyncio
    async def test_unknown_instrument(
        self, fetcher: HistoricalBackfillFetcher, source: AsyncMock
    ) -> None:
        result = await fetcher.backfill_instrument("999999", day_count=5)

        assert not result.ok
        source.fetch_daily_ohlcv.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("day_count", [0, -30])
    async def test_non_positive_day_count_is_rejected(
        self,
        fetcher: HistoricalBackfillFetcher,
        instruments: InMemoryInstrumentRepository,
        source: AsyncMock,
        day_count: int,
    ) -> None:
        await _register(instruments, "005930")

        with pytest.raises(ValidationError, match="at least 1"):
            await fetcher.backfill_instrument("005930", day_count=day_count)
        source.fetch_daily_ohlcv.assert_not_awaited()


class TestBackfillAll:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_run(
        self,
        fetcher: HistoricalBackfillFetcher,
        instruments: InMemoryInstrumentRepository,
        source: AsyncMock,
    ) -> None:
        await _register(instruments, "000660", "005930", "035420")
        good = [_source_candle(date(2025, 11, 12))]
        source.fetch_daily_ohlcv.side_effect = [good, RuntimeError("boom"), good]

        results = await fetcher.backfill_all(day_count=5)

        assert [r.instrument_id for r in results] == ["000660", "005930", "035420"]
        assert [r.ok for r in results] == [True, False, True]

        summary = fetcher.summarize(results)
        assert summary.attempted == 3
        assert summary.succeeded == 2
        assert summary.failed == 1
        assert summary.keys(ItemStatus.FAILED) == ["005930"]
        assert summary.errors[0]["error_type"] == "BackfillError"
        assert "boom" in summary.errors[0]["message"]

    @pytest.mark.asyncio
    async def test_cancel_stops_before_next_instrument(
        self,
        fetcher: HistoricalBackfillFetcher,
        instruments: InMemoryInstrumentRepository,
        source: AsyncMock,
    ) -> None:
        await _register(instruments, "000660", "005930")
        cancel = asyncio.Event()

        async def _fetch_and_cancel(*args: object) -> list[SourceCandle]:
            cancel.set()
            return [_source_candle(date(2025, 11, 12))]

        source.fetch_daily_ohlcv.side_effect = _fetch_and_cancel

        results = await fetcher.backfill_all(day_count=5, cancel_event=cancel)

        assert len(results) == 1
        assert results[0].instrument_id == "000660"
        assert results[0].inserted == 1

    @pytest.mark.asyncio
    async def test_non_positive_day_count_is_rejected_before_any_fetch(
        self,
        fetcher: HistoricalBackfillFetcher,
        instruments: InMemoryInstrumentRepository,
        source: AsyncMock,
    ) -> None:
        await _register(instruments, "000660", "005930")

        with pytest.raises(ValidationError):
            await fetcher.backfill_all(day_count=0)
        source.fetch_daily_ohlcv.assert_not_awaited()
