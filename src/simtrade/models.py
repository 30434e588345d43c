"""Shared data models for the valuation, ranking and backfill engine.

CRITICAL: All monetary values use Decimal. Never use float for prices, cash, assets or returns.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class TransactionType(str, Enum):
    """Ledger entry direction."""

    BUY = "BUY"
    SELL = "SELL"


class League(str, Enum):
    """Ranking pool tier, decided by a total-assets threshold."""

    ROOKIE = "ROOKIE"
    HALL_OF_FAME = "HALL_OF_FAME"


class RankingPeriod(str, Enum):
    """Window a period return is scoped to."""

    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    ALL_TIME = "ALL_TIME"


class CapitalChangeReason(str, Enum):
    """Why a capital adjustment was appended to the audit trail."""

    ROOKIE_REWARD = "ROOKIE_REWARD"
    HALL_REWARD = "HALL_REWARD"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"


class RewardType(str, Enum):
    """Monthly reward bracket."""

    ROOKIE_TOP10 = "ROOKIE_TOP10"
    ROOKIE_TOP100 = "ROOKIE_TOP100"
    HALL_TOP100 = "HALL_TOP100"


class ItemStatus(str, Enum):
    """Outcome of one item inside a batch run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Transaction:
    """Immutable ledger entry. The source of truth for position reconstruction."""

    id: str
    user_id: str
    type: TransactionType
    instrument_id: str
    quantity: int
    price: Decimal
    fee: Decimal
    executed_at: datetime  # timezone-aware

    @property
    def gross_amount(self) -> Decimal:
        return self.price * self.quantity

    @property
    def total_amount(self) -> Decimal:
        """Cash that left (BUY) or entered (SELL) the account, fee included."""
        if self.type == TransactionType.BUY:
            return self.gross_amount + self.fee
        return self.gross_amount - self.fee


@dataclass
class Holding:
    """Derived position for one instrument."""

    instrument_id: str
    quantity: int
    avg_price: Decimal
    current_price: Decimal = Decimal("0")

    @property
    def market_value(self) -> Decimal:
        return self.current_price * self.quantity


@dataclass
class PortfolioSnapshot:
    """Point-in-time valuation of one portfolio.

    Re-derivable from ledger + price history + capital history. ``price_gaps``
    lists instruments whose candle for ``date`` was missing and were valued
    from an earlier observation instead.
    """

    date: date
    cash: Decimal
    holdings_value: Decimal
    total_assets: Decimal
    total_return: Decimal
    price_gaps: list[str] = field(default_factory=list)


@dataclass
class Account:
    """User + portfolio record the engine reads and updates."""

    user_id: str
    username: str
    league: League
    initial_capital: Decimal
    cash: Decimal
    total_assets: Decimal
    total_return: Decimal
    created_at: datetime
    league_updated_at: datetime | None = None
    weekly_start_assets: Decimal | None = None
    monthly_start_assets: Decimal | None = None


@dataclass(frozen=True)
class CapitalHistoryEntry:
    """Append-only audit record of one capital adjustment."""

    user_id: str
    amount: Decimal
    reason: CapitalChangeReason
    new_total: Decimal
    created_at: datetime
    reward_type: RewardType | None = None
    reward_rank: int | None = None
    period_label: str | None = None  # "2025-11"
    league: League | None = None
    description: str | None = None


@dataclass
class RankingRow:
    """One stored rank. At most one row per (user_id, period)."""

    user_id: str
    period: RankingPeriod
    league: League
    rank: int
    period_return: Decimal
    as_of: date
    reward_given: bool = False
    reward_amount: Decimal = Decimal("0")


@dataclass
class MarketContext:
    """Per-date market summary; the first backfill stage's artifact."""

    date: date
    instrument_count: int
    advancers: int
    decliners: int
    unchanged: int
    average_change_pct: Decimal
    top_gainer: str | None = None
    top_loser: str | None = None
    cost: Decimal = Decimal("0")


@dataclass
class PortfolioAnalysis:
    """Per-user daily summary produced by the personalized analysis stage."""

    user_id: str
    date: date
    total_assets: Decimal
    day_change: Decimal
    day_change_pct: Decimal
    holdings_count: int
    trades_count: int
    summary: str
    cost: Decimal = Decimal("0")


@dataclass
class ItemResult:
    """Per-item result inside a batch. Expected failures travel here, not as exceptions."""

    key: str
    status: ItemStatus
    message: str = ""
    error_type: str | None = None
    data: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, key: str, message: str = "", **data: object) -> ItemResult:
        return cls(key=key, status=ItemStatus.SUCCEEDED, message=message, data=data)

    @classmethod
    def skipped(cls, key: str, reason: str, **data: object) -> ItemResult:
        return cls(key=key, status=ItemStatus.SKIPPED, message=reason, data=data)

    @classmethod
    def failed(cls, key: str, error: Exception | str) -> ItemResult:
        if isinstance(error, Exception):
            return cls(
                key=key,
                status=ItemStatus.FAILED,
                message=str(error),
                error_type=type(error).__name__,
            )
        return cls(key=key, status=ItemStatus.FAILED, message=error, error_type="Error")


@dataclass
class BatchSummary:
    """Structured summary every trigger returns: nothing is skipped silently."""

    operation: str
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)
    results: list[ItemResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    def record(self, result: ItemResult) -> None:
        """Count one item result and keep it for reporting."""
        self.attempted += 1
        self.results.append(result)
        if result.status == ItemStatus.SUCCEEDED:
            self.succeeded += 1
        elif result.status == ItemStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.errors.append(
                {
                    "key": result.key,
                    "error_type": result.error_type,
                    "message": result.message,
                }
            )

    def keys(self, status: ItemStatus) -> list[str]:
        """Keys of all items that ended with ``status``."""
        return [r.key for r in self.results if r.status == status]

    def to_dict(self) -> dict:
        return _jsonable(asdict(self))


def _jsonable(value: object) -> object:
    """Convert Decimals, dates and enums nested in dataclass dicts to JSON-safe values."""
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def to_jsonable(value: object) -> object:
    """Public JSON conversion for CLI output of any model or summary."""
    if hasattr(value, "__dataclass_fields__"):
        return _jsonable(asdict(value))  # type: ignore[arg-type]
    return _jsonable(value)
