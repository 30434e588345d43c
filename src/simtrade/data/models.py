"""Data models for instruments and daily OHLCV candles.

CRITICAL: All price fields use Decimal. Never use float for prices.
Stored candles are always complete and satisfy the OHLC bounds; anything
coming from the quote source is checked with ``OHLCV.problem()`` first.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal


@dataclass(frozen=True)
class OHLCV:
    """Raw daily bar values as received. Any field may be missing."""

    open: Decimal | None
    high: Decimal | None
    low: Decimal | None
    close: Decimal | None
    volume: int = 0

    def problem(self) -> str | None:
        """Reason this bar must not be stored, or None if it is valid."""
        raw = {"open": self.open, "high": self.high, "low": self.low, "close": self.close}
        prices: dict[str, Decimal] = {}
        for name, value in raw.items():
            if value is None:
                return f"missing_{name}"
            if value <= 0:
                return f"non_positive_{name}"
            prices[name] = value
        low, high = prices["low"], prices["high"]
        if low > high:
            return "low_above_high"
        if not low <= prices["open"] <= high:
            return "open_out_of_range"
        if not low <= prices["close"] <= high:
            return "close_out_of_range"
        if self.volume < 0:
            return "negative_volume"
        return None


@dataclass
class PriceCandle:
    """A stored daily candle. Unique per (instrument_id, date)."""

    instrument_id: str
    date: date
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int = 0

    @property
    def ohlcv(self) -> OHLCV:
        return OHLCV(self.open, self.high, self.low, self.close, self.volume)


@dataclass
class SourceCandle:
    """One daily bar returned by the quote source, not yet validated."""

    date: date
    ohlcv: OHLCV


@dataclass
class Instrument:
    """A tracked instrument plus its current intraday quote.

    The intraday fields are refreshed by the daily collection run and read
    by ``create_daily_candle`` at market close.
    """

    instrument_id: str
    name: str
    market: str = "KOSPI"
    open_price: Decimal | None = None
    high_price: Decimal | None = None
    low_price: Decimal | None = None
    current_price: Decimal | None = None
    volume: int = 0
    updated_at: datetime | None = None

    @property
    def has_quote(self) -> bool:
        return self.current_price is not None and self.current_price > 0


@dataclass
class CandleWriteResult:
    """Outcome of one candle upsert. ``written`` is False when the bar was skipped."""

    instrument_id: str
    date: date
    written: bool
    created: bool = False
    reason: str | None = None


@dataclass
class InstrumentBackfillResult:
    """Per-instrument outcome of a history backfill. Failures land in ``errors``."""

    instrument_id: str
    name: str
    days_requested: int
    inserted: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
