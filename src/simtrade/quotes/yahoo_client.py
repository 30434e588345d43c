"""Yahoo Finance implementation of the PriceQuoteSource interface.

yfinance is synchronous, so every call runs in the default thread pool and
is bounded by ``request_timeout``. Korean listings are addressed with the
``.KS`` (KOSPI) or ``.KQ`` (KOSDAQ) suffix.

Pacing is NOT done here; callers own a RateLimiter so that one limiter can
span every request in a batch.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone

import yfinance as yf

from simtrade.config import PriceSourceSettings
from simtrade.data.models import OHLCV, SourceCandle
from simtrade.exceptions import ExternalServiceError
from simtrade.logging import get_logger
from simtrade.quotes.client import PriceQuoteSource
from simtrade.quotes.types import Quote, to_decimal, to_provider_symbol

logger = get_logger(__name__)


class YahooPriceSource(PriceQuoteSource):
    """Yahoo Finance quote source.

    Args:
        settings: Symbol suffixes and request timeout.
        markets: Optional ``instrument_id -> market`` map ("KOSPI" / "KOSDAQ")
            used to choose the ticker suffix. Unknown ids default to KOSPI.
    """

    def __init__(
        self,
        settings: PriceSourceSettings,
        markets: dict[str, str] | None = None,
    ) -> None:
        self._settings = settings
        self._markets = dict(markets or {})

    def symbol_for(self, instrument_id: str) -> str:
        return to_provider_symbol(
            instrument_id,
            self._markets.get(instrument_id, "KOSPI"),
            self._settings.symbol_suffix,
            self._settings.kosdaq_suffix,
        )

    async def fetch_daily_ohlcv(
        self, instrument_id: str, start: date, end: date
    ) -> list[SourceCandle]:
        symbol = self.symbol_for(instrument_id)
        df = await self._run(
            lambda: yf.Ticker(symbol).history(
                start=start.isoformat(),
                end=(end + timedelta(days=1)).isoformat(),  # end is exclusive
                interval="1d",
                auto_adjust=False,
            ),
            instrument_id,
        )
        if df is None or df.empty:
            return []

        candles: list[SourceCandle] = []
        for idx, row in df.iterrows():
            day = idx.date() if hasattr(idx, "date") else idx
            if day < start or day > end:
                continue
            volume = row.get("Volume")
            candles.append(
                SourceCandle(
                    date=day,
                    ohlcv=OHLCV(
                        open=to_decimal(row.get("Open")),
                        high=to_decimal(row.get("High")),
                        low=to_decimal(row.get("Low")),
                        close=to_decimal(row.get("Close")),
                        volume=int(volume) if volume is not None and volume == volume else 0,
                    ),
                )
            )
        candles.sort(key=lambda c: c.date)
        logger.debug(
            "yahoo_daily_ohlcv_fetched",
            instrument_id=instrument_id,
            symbol=symbol,
            bars=len(candles),
        )
        return candles

    async def fetch_quote(self, instrument_id: str) -> Quote:
        symbol = self.symbol_for(instrument_id)
        df = await self._run(
            lambda: yf.Ticker(symbol).history(period="5d", interval="1d", auto_adjust=False),
            instrument_id,
        )
        if df is None or df.empty:
            raise ExternalServiceError(f"No quote returned for {instrument_id}")

        row = df.iloc[-1]
        current = to_decimal(row.get("Close"))
        if current is None or current <= 0:
            raise ExternalServiceError(f"Invalid current price for {instrument_id}")
        volume = row.get("Volume")
        return Quote(
            instrument_id=instrument_id,
            current=current,
            open=to_decimal(row.get("Open")),
            high=to_decimal(row.get("High")),
            low=to_decimal(row.get("Low")),
            volume=int(volume) if volume is not None and volume == volume else 0,
            fetched_at=datetime.now(timezone.utc),
        )

    async def _run(self, fn, instrument_id: str):  # type: ignore[no-untyped-def]
        """Run a blocking yfinance call in the executor with a timeout."""
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, fn),
                timeout=self._settings.request_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExternalServiceError(
                f"Quote source timed out after {self._settings.request_timeout}s for {instrument_id}"
            ) from e
        except Exception as e:
            raise ExternalServiceError(f"Quote source error for {instrument_id}: {e}") from e
