"""Tests for DailyPriceCollector: quote refresh and market-close candle writes."""

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from simtrade.data.collector import DailyPriceCollector
from simtrade.data.models import Instrument
from simtrade.data.store import PriceHistoryStore
from simtrade.exceptions import ExternalServiceError
from simtrade.models import ItemStatus
from simtrade.persistence.memory import InMemoryInstrumentRepository
from simtrade.quotes.rate_limiter import RateLimiter
from simtrade.quotes.types import Quote

TODAY = date(2025, 11, 12)


def _quote(instrument_id: str, current: str) -> Quote:
    price = Decimal(current)
    return Quote(
        instrument_id=instrument_id,
        current=price,
        open=price,
        high=price,
        low=price,
        volume=500,
        fetched_at=datetime(2025, 11, 12, 5, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def source() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def collector(
    source: AsyncMock,
    instruments: InMemoryInstrumentRepository,
    price_store: PriceHistoryStore,
) -> DailyPriceCollector:
    return DailyPriceCollector(source, instruments, price_store, RateLimiter(min_interval=0))


class TestDailyCollection:
    @pytest.mark.asyncio
    async def test_refreshes_tracked_quotes(
        self,
        collector: DailyPriceCollector,
        instruments: InMemoryInstrumentRepository,
        source: AsyncMock,
    ) -> None:
        await instruments.upsert_instrument(Instrument("000660", "SK hynix"))
        await instruments.upsert_instrument(Instrument("005930", "Samsung"))
        source.fetch_quote.side_effect = [
            _quote("000660", "180000"),
            ExternalServiceError("No quote returned for 005930"),
        ]

        summary = await collector.run_daily_collection()

        assert summary.succeeded == 1
        assert summary.failed == 1
        assert summary.keys(ItemStatus.FAILED) == ["005930"]
        assert summary.errors[0]["error_type"] == "ExternalServiceError"
        refreshed = await instruments.get_instrument("000660")
        assert refreshed is not None
        assert refreshed.current_price == Decimal("180000")
        assert refreshed.volume == 500


class TestDailyCandleClose:
    @pytest.mark.asyncio
    async def test_writes_candles_for_quoted_instruments(
        self,
        collector: DailyPriceCollector,
        instruments: InMemoryInstrumentRepository,
        price_store: PriceHistoryStore,
    ) -> None:
        await instruments.upsert_instrument(
            Instrument("005930", "Samsung", current_price=Decimal("68000"))
        )
        await instruments.upsert_instrument(Instrument("000660", "SK hynix"))

        summary = await collector.run_daily_candle_close()

        assert summary.succeeded == 1
        assert summary.skipped == 1
        assert summary.results[0].key == "000660"
        assert summary.results[0].message == "no_tracked_quote"
        candle = await price_store.get_candle("005930", TODAY)
        assert candle is not None
        assert candle.close == Decimal("68000")

    @pytest.mark.asyncio
    async def test_invalid_tracked_bar_is_skipped(
        self,
        collector: DailyPriceCollector,
        instruments: InMemoryInstrumentRepository,
    ) -> None:
        await instruments.upsert_instrument(
            Instrument(
                "005930",
                "Samsung",
                high_price=Decimal("67000"),
                low_price=Decimal("66000"),
                current_price=Decimal("68000"),
            )
        )

        summary = await collector.run_daily_candle_close()

        assert summary.skipped == 1
        assert summary.results[0].message == "open_out_of_range"
