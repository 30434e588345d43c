"""Quote-source type definitions and symbol mapping helpers.

All prices use Decimal. Never use float for prices.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation


@dataclass
class Quote:
    """Current intraday quote for one instrument."""

    instrument_id: str
    current: Decimal
    open: Decimal | None
    high: Decimal | None
    low: Decimal | None
    volume: int
    fetched_at: datetime


def to_decimal(value: object) -> Decimal | None:
    """Convert a numeric provider value to Decimal, or None if missing/NaN.

    Floats go through ``str`` so the Decimal carries the printed value,
    not the binary expansion.
    """
    if value is None:
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if result.is_nan() or result.is_infinite():
        return None
    return result


def to_provider_symbol(instrument_id: str, market: str, kospi_suffix: str, kosdaq_suffix: str) -> str:
    """Map a 6-digit exchange code to the provider ticker (``005930`` -> ``005930.KS``)."""
    if "." in instrument_id:
        return instrument_id
    suffix = kosdaq_suffix if market.upper() == "KOSDAQ" else kospi_suffix
    return f"{instrument_id}{suffix}"
