"""Sequential historical price backfill with request pacing and progress logging.

Fetches daily bars for ``[today - day_count, today]`` from the quote source
and stores each one through PriceHistoryStore, which validates before write.

CRITICAL implementation notes:
- Instruments are processed one at a time, one request in flight; the
  RateLimiter spaces requests (source allows about 1 request/second)
- No automatic retry: a failed instrument is recorded in its ``errors`` and
  the run moves on
- Cancellation is checked only between instruments, so an instrument is
  either fully processed or not started
"""

import asyncio
import time

from simtrade.config import BackfillSettings
from simtrade.data.models import InstrumentBackfillResult
from simtrade.data.store import PriceHistoryStore
from simtrade.exceptions import ValidationError
from simtrade.logging import get_logger
from simtrade.models import BatchSummary, ItemResult, ItemStatus
from simtrade.persistence.interfaces import InstrumentRepository
from simtrade.quotes.client import PriceQuoteSource
from simtrade.quotes.rate_limiter import RateLimiter
from simtrade.trading_calendar import TradingCalendar, add_days

logger = get_logger(__name__)

NO_DATA_ERROR = "No data returned"


class HistoricalBackfillFetcher:
    """Fetches historical daily bars and persists them via the price store.

    Usage:
        fetcher = HistoricalBackfillFetcher(source, store, instruments, calendar, limiter)
        results = await fetcher.backfill_all(day_count=365)
        summary = fetcher.summarize(results)
    """

    def __init__(
        self,
        source: PriceQuoteSource,
        store: PriceHistoryStore,
        instruments: InstrumentRepository,
        calendar: TradingCalendar,
        rate_limiter: RateLimiter,
        settings: BackfillSettings | None = None,
    ) -> None:
        self._source = source
        self._store = store
        self._instruments = instruments
        self._calendar = calendar
        self._limiter = rate_limiter
        self._settings = settings or BackfillSettings()

    # ──────────────────────────────────────────────
    # Public methods
    # ──────────────────────────────────────────────

    async def backfill_instrument(
        self, instrument_id: str, day_count: int | None = None
    ) -> InstrumentBackfillResult:
        """Fetch and store bars for one instrument.

        Never raises for source failures. Raises ValidationError for a
        ``day_count`` below 1.
        """
        days = self._day_count(day_count)
        instrument = await self._instruments.get_instrument(instrument_id)
        name = instrument.name if instrument else instrument_id
        result = InstrumentBackfillResult(instrument_id=instrument_id, name=name, days_requested=days)

        if instrument is None:
            result.errors.append(f"Instrument not found: {instrument_id}")
            return result

        end = self._calendar.today()
        start = add_days(end, -days)

        await self._limiter.wait()
        try:
            bars = await self._source.fetch_daily_ohlcv(instrument_id, start, end)
        except Exception as e:
            result.errors.append(f"{type(e).__name__}: {e}")
            logger.warning(
                "instrument_backfill_failed",
                instrument_id=instrument_id,
                error=str(e),
            )
            return result

        if not bars:
            result.errors.append(NO_DATA_ERROR)
            logger.warning("instrument_backfill_empty", instrument_id=instrument_id)
            return result

        for bar in bars:
            write = await self._store.upsert_candle(instrument_id, bar.date, bar.ohlcv)
            if write.written:
                result.inserted += 1
            else:
                result.skipped += 1

        logger.info(
            "instrument_backfilled",
            instrument_id=instrument_id,
            days_requested=days,
            inserted=result.inserted,
            skipped=result.skipped,
        )
        return result

    async def backfill_all(
        self,
        day_count: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[InstrumentBackfillResult]:
        """Backfill every tracked instrument sequentially.

        One instrument's failure never stops the run. If ``cancel_event`` is
        set, the run stops before the next instrument.
        """
        days = self._day_count(day_count)
        instruments = await self._instruments.list_instruments()
        start_time = time.monotonic()
        results: list[InstrumentBackfillResult] = []

        for i, instrument in enumerate(instruments, 1):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    "price_backfill_cancelled",
                    processed=len(results),
                    remaining=len(instruments) - len(results),
                )
                break

            logger.debug(
                "backfilling_instrument",
                instrument_id=instrument.instrument_id,
                progress=f"{i}/{len(instruments)}",
            )
            results.append(await self.backfill_instrument(instrument.instrument_id, days))

        duration = time.monotonic() - start_time
        logger.info(
            "price_backfill_complete",
            instruments=len(results),
            inserted=sum(r.inserted for r in results),
            failed=sum(1 for r in results if not r.ok),
            total_duration_seconds=round(duration, 1),
        )
        return results

    def _day_count(self, day_count: int | None) -> int:
        days = day_count if day_count is not None else self._settings.history_days
        if days < 1:
            raise ValidationError(f"day_count must be at least 1, got {days}")
        return days

    @staticmethod
    def summarize(results: list[InstrumentBackfillResult]) -> BatchSummary:
        """Aggregate per-instrument results into a BatchSummary."""
        summary = BatchSummary(operation="backfill_prices")
        for r in results:
            if r.ok:
                summary.record(
                    ItemResult.ok(r.instrument_id, inserted=r.inserted, skipped=r.skipped)
                )
            else:
                summary.record(
                    ItemResult(
                        key=r.instrument_id,
                        status=ItemStatus.FAILED,
                        message="; ".join(r.errors),
                        error_type="BackfillError",
                        data={"inserted": r.inserted, "skipped": r.skipped},
                    )
                )
        return summary
