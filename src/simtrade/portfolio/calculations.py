"""Portfolio arithmetic: total assets, returns, average price, P/L and fees.

All calculations use Decimal arithmetic exclusively. Money and percentages
are quantized to 2 decimal places with ROUND_HALF_UP; fees are whole KRW.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from simtrade.models import Holding

TWO_PLACES = Decimal("0.01")
ONE_WON = Decimal("1")
HUNDRED = Decimal("100")
DEFAULT_FEE_RATE = Decimal("0.00015")  # 0.015%


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def calculate_holdings_value(holdings: Iterable[Holding]) -> Decimal:
    return sum((h.current_price * h.quantity for h in holdings), Decimal("0"))


def calculate_total_assets(cash: Decimal, holdings: Iterable[Holding]) -> Decimal:
    """Cash plus the market value of every holding."""
    return cash + calculate_holdings_value(holdings)


def calculate_total_return(total_assets: Decimal, capital: Decimal) -> Decimal:
    """Percentage return of ``total_assets`` over ``capital``; 0 when capital is 0."""
    if capital == 0:
        return Decimal("0")
    return quantize_money((total_assets - capital) / capital * HUNDRED)


def calculate_period_return(current: Decimal, baseline: Decimal | None) -> Decimal:
    """Percentage change from ``baseline``; 0 when the baseline is missing or 0."""
    if baseline is None or baseline == 0:
        return Decimal("0")
    return quantize_money((current - baseline) / baseline * HUNDRED)


def calculate_avg_price(
    old_quantity: int,
    old_avg_price: Decimal,
    new_quantity: int,
    new_price: Decimal,
) -> Decimal:
    """Weighted-average cost after a buy.

    A fresh position adopts ``new_price`` exactly; otherwise the weighted
    average is rounded to 2 decimal places.
    """
    if old_quantity == 0:
        return new_price
    total_cost = old_avg_price * old_quantity + new_price * new_quantity
    return quantize_money(total_cost / (old_quantity + new_quantity))


def calculate_unrealized_pl(holdings: Iterable[Holding]) -> Decimal:
    """Sum of ``(current_price - avg_price) * quantity`` over all holdings."""
    total = sum(
        ((h.current_price - h.avg_price) * h.quantity for h in holdings),
        Decimal("0"),
    )
    return quantize_money(total)


def calculate_realized_pl(avg_price: Decimal, sell_price: Decimal, quantity: int) -> Decimal:
    return quantize_money((sell_price - avg_price) * quantity)


def calculate_trading_fee(amount: Decimal, fee_rate: Decimal = DEFAULT_FEE_RATE) -> Decimal:
    """Fee on a trade amount, rounded to whole KRW."""
    return (amount * fee_rate).quantize(ONE_WON, rounding=ROUND_HALF_UP)
