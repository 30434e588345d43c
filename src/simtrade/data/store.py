"""Price history store: validated daily-candle reads and writes.

Provides PriceHistoryStore, the only write path for candles. Every write is
an upsert keyed by (instrument_id, date) and is checked first: incomplete
bars and bars violating ``low <= open, close <= high`` are skipped and
logged, never stored. A missing candle is a legitimate gap and reads
return None for it.

CRITICAL: A stored candle never carries a zero or negative price.
"""

from datetime import date

from simtrade.data.models import OHLCV, CandleWriteResult, PriceCandle
from simtrade.exceptions import NotFoundError
from simtrade.logging import get_logger
from simtrade.persistence.interfaces import CandleRepository, InstrumentRepository
from simtrade.trading_calendar import TradingCalendar

logger = get_logger(__name__)


class PriceHistoryStore:
    """Validated access to daily candles.

    Args:
        candles: Candle repository (SQLite or in-memory).
        instruments: Instrument repository holding the tracked intraday quotes.
        calendar: Market calendar deciding which date is "today".

    Usage:
        store = PriceHistoryStore(candles, instruments, calendar)
        result = await store.upsert_candle("005930", day, OHLCV(...))
    """

    def __init__(
        self,
        candles: CandleRepository,
        instruments: InstrumentRepository,
        calendar: TradingCalendar,
    ) -> None:
        self._candles = candles
        self._instruments = instruments
        self._calendar = calendar

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def upsert_candle(self, instrument_id: str, day: date, ohlcv: OHLCV) -> CandleWriteResult:
        """Insert or replace the candle for (instrument_id, day) if it is valid.

        Invalid bars are skipped with a ``candle_skipped`` log line and a
        result carrying the reason; nothing is raised.
        """
        problem = ohlcv.problem()
        if problem is not None:
            logger.warning(
                "candle_skipped",
                instrument_id=instrument_id,
                date=day.isoformat(),
                reason=problem,
            )
            return CandleWriteResult(instrument_id, day, written=False, reason=problem)

        candle = PriceCandle(
            instrument_id=instrument_id,
            date=day,
            open=ohlcv.open,  # type: ignore[arg-type]
            high=ohlcv.high,  # type: ignore[arg-type]
            low=ohlcv.low,  # type: ignore[arg-type]
            close=ohlcv.close,  # type: ignore[arg-type]
            volume=ohlcv.volume,
        )
        created = await self._candles.upsert(candle)
        logger.debug(
            "candle_upserted",
            instrument_id=instrument_id,
            date=day.isoformat(),
            created=created,
            close=str(candle.close),
        )
        return CandleWriteResult(instrument_id, day, written=True, created=created)

    async def create_daily_candle(self, instrument_id: str) -> CandleWriteResult:
        """Write today's candle from the instrument's tracked intraday quote.

        The open of the first write of the day is kept; later same-day writes
        only move high, low, close and volume. Raises NotFoundError for an
        unknown instrument.
        """
        instrument = await self._instruments.get_instrument(instrument_id)
        if instrument is None:
            raise NotFoundError(f"Instrument not found: {instrument_id}")

        today = self._calendar.today()
        if not instrument.has_quote:
            logger.warning(
                "candle_skipped",
                instrument_id=instrument_id,
                date=today.isoformat(),
                reason="no_tracked_quote",
            )
            return CandleWriteResult(instrument_id, today, written=False, reason="no_tracked_quote")

        existing = await self._candles.get(instrument_id, today)
        if existing is not None:
            open_price = existing.open
        else:
            open_price = instrument.open_price or instrument.current_price

        ohlcv = OHLCV(
            open=open_price,
            high=instrument.high_price or instrument.current_price,
            low=instrument.low_price or instrument.current_price,
            close=instrument.current_price,
            volume=instrument.volume,
        )
        return await self.upsert_candle(instrument_id, today, ohlcv)

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def get_candle(self, instrument_id: str, day: date) -> PriceCandle | None:
        """Candle for exactly ``day``, or None for a gap."""
        return await self._candles.get(instrument_id, day)

    async def get_latest_candle(self, instrument_id: str, on_or_before: date) -> PriceCandle | None:
        """Nearest candle at or before ``on_or_before``, or None if there is none."""
        return await self._candles.get_latest(instrument_id, on_or_before)

    async def get_candles(self, instrument_id: str, start: date, end: date) -> list[PriceCandle]:
        return await self._candles.list_range(instrument_id, start, end)

    async def list_candles_on(self, day: date) -> list[PriceCandle]:
        return await self._candles.list_on(day)

    async def count_candles_on(self, day: date) -> int:
        return len(await self._candles.list_on(day))
