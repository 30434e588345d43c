"""Daily price collection: intraday quote refresh and market-close candle writes.

``run_daily_collection`` refreshes each instrument's tracked intraday fields
from the quote source, sequentially and paced. ``run_daily_candle_close``
turns those tracked fields into today's candle for every instrument that
has a valid quote.
"""

import asyncio
import time

from simtrade.data.store import PriceHistoryStore
from simtrade.exceptions import SimTradeError
from simtrade.logging import get_logger
from simtrade.models import BatchSummary, ItemResult
from simtrade.persistence.interfaces import InstrumentRepository
from simtrade.quotes.client import PriceQuoteSource
from simtrade.quotes.rate_limiter import RateLimiter

logger = get_logger(__name__)


class DailyPriceCollector:
    """Keeps tracked quotes and today's candles current.

    Args:
        source: External quote source.
        instruments: Instrument repository holding the tracked intraday fields.
        store: Price history store used for the market-close candle write.
        rate_limiter: Shared request pacer for the quote source.
    """

    def __init__(
        self,
        source: PriceQuoteSource,
        instruments: InstrumentRepository,
        store: PriceHistoryStore,
        rate_limiter: RateLimiter,
    ) -> None:
        self._source = source
        self._instruments = instruments
        self._store = store
        self._limiter = rate_limiter

    async def run_daily_collection(self, cancel_event: asyncio.Event | None = None) -> BatchSummary:
        """Fetch the current quote for every instrument and store its intraday fields."""
        summary = BatchSummary(operation="daily_collection")
        start_time = time.monotonic()

        for instrument in await self._instruments.list_instruments():
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("daily_collection_cancelled", processed=summary.attempted)
                break

            await self._limiter.wait()
            try:
                quote = await self._source.fetch_quote(instrument.instrument_id)
                await self._instruments.update_quote(quote)
            except Exception as e:
                logger.warning(
                    "quote_refresh_failed",
                    instrument_id=instrument.instrument_id,
                    error=str(e),
                )
                summary.record(ItemResult.failed(instrument.instrument_id, e))
                continue

            summary.record(ItemResult.ok(instrument.instrument_id, current=str(quote.current)))

        summary.duration_seconds = round(time.monotonic() - start_time, 3)
        logger.info(
            "daily_collection_complete",
            succeeded=summary.succeeded,
            failed=summary.failed,
            duration_seconds=summary.duration_seconds,
        )
        return summary

    async def run_daily_candle_close(self) -> BatchSummary:
        """Write today's candle for every instrument with a valid tracked quote."""
        summary = BatchSummary(operation="daily_candle_close")
        start_time = time.monotonic()

        for instrument in await self._instruments.list_instruments():
            if not instrument.has_quote:
                summary.record(ItemResult.skipped(instrument.instrument_id, "no_tracked_quote"))
                continue
            try:
                result = await self._store.create_daily_candle(instrument.instrument_id)
            except SimTradeError as e:
                summary.record(ItemResult.failed(instrument.instrument_id, e))
                continue

            if result.written:
                summary.record(
                    ItemResult.ok(
                        instrument.instrument_id,
                        date=result.date.isoformat(),
                        created=result.created,
                    )
                )
            else:
                summary.record(
                    ItemResult.skipped(instrument.instrument_id, result.reason or "invalid_candle")
                )

        summary.duration_seconds = round(time.monotonic() - start_time, 3)
        logger.info(
            "daily_candle_close_complete",
            written=summary.succeeded,
            skipped=summary.skipped,
            failed=summary.failed,
        )
        return summary
