"""Portfolio valuation: arithmetic, ledger replay and snapshot persistence."""

from simtrade.portfolio.calculations import (
    calculate_avg_price,
    calculate_period_return,
    calculate_total_assets,
    calculate_total_return,
    calculate_trading_fee,
    quantize_money,
)
from simtrade.portfolio.reconstructor import PortfolioReconstructor, window_for
from simtrade.portfolio.snapshots import SnapshotService

__all__ = [
    "PortfolioReconstructor",
    "SnapshotService",
    "calculate_avg_price",
    "calculate_period_return",
    "calculate_total_assets",
    "calculate_total_return",
    "calculate_trading_fee",
    "quantize_money",
    "window_for",
]
