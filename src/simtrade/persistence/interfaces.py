"""Repository ports for the valuation and ranking engine.

Services depend only on these interfaces. Concrete implementations live in
``simtrade.persistence.sqlite`` (aiosqlite) and ``simtrade.persistence.memory``
(tests and dry runs).
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal

from simtrade.data.models import Instrument, PriceCandle
from simtrade.models import (
    Account,
    CapitalHistoryEntry,
    League,
    MarketContext,
    PortfolioAnalysis,
    PortfolioSnapshot,
    RankingPeriod,
    RankingRow,
    Transaction,
)
from simtrade.quotes.types import Quote


class InstrumentRepository(ABC):
    """Tracked instruments and their intraday quote fields."""

    @abstractmethod
    async def list_instruments(self) -> list[Instrument]:
        """All tracked instruments ordered by instrument_id."""
        ...

    @abstractmethod
    async def get_instrument(self, instrument_id: str) -> Instrument | None:
        ...

    @abstractmethod
    async def upsert_instrument(self, instrument: Instrument) -> None:
        ...

    @abstractmethod
    async def update_quote(self, quote: Quote) -> None:
        """Refresh the tracked intraday fields from a fetched quote."""
        ...


class CandleRepository(ABC):
    """Daily candles keyed by (instrument_id, date)."""

    @abstractmethod
    async def get(self, instrument_id: str, day: date) -> PriceCandle | None:
        ...

    @abstractmethod
    async def get_latest(self, instrument_id: str, on_or_before: date) -> PriceCandle | None:
        """Most recent candle with ``date <= on_or_before``."""
        ...

    @abstractmethod
    async def list_range(self, instrument_id: str, start: date, end: date) -> list[PriceCandle]:
        """Candles in ``[start, end]`` ordered by date."""
        ...

    @abstractmethod
    async def list_on(self, day: date) -> list[PriceCandle]:
        """Every candle stored for ``day`` ordered by instrument_id."""
        ...

    @abstractmethod
    async def upsert(self, candle: PriceCandle) -> bool:
        """Insert or replace. Returns True if a new row was created."""
        ...


class LedgerReader(ABC):
    """Read-only view of the immutable transaction ledger."""

    @abstractmethod
    async def list_transactions(
        self, user_id: str, until: datetime | None = None
    ) -> list[Transaction]:
        """Transactions with ``executed_at <= until`` ordered by (executed_at, id)."""
        ...


class AccountRepository(ABC):
    """User/portfolio records and the append-only capital history."""

    @abstractmethod
    async def list_accounts(self) -> list[Account]:
        """All accounts ordered by user_id."""
        ...

    @abstractmethod
    async def get_account(self, user_id: str) -> Account | None:
        ...

    @abstractmethod
    async def save_account(self, account: Account) -> None:
        """Create or fully replace an account record."""
        ...

    @abstractmethod
    async def update_metrics(
        self, user_id: str, cash: Decimal, total_assets: Decimal, total_return: Decimal
    ) -> None:
        ...

    @abstractmethod
    async def update_league(self, user_id: str, league: League, updated_at: datetime) -> None:
        ...

    @abstractmethod
    async def set_period_start_assets(
        self, user_id: str, period: RankingPeriod, amount: Decimal
    ) -> None:
        """Store the weekly or monthly baseline. ALL_TIME is rejected."""
        ...

    @abstractmethod
    async def list_capital_history(self, user_id: str) -> list[CapitalHistoryEntry]:
        """Entries ordered by created_at."""
        ...

    @abstractmethod
    async def list_reward_entries(self, period_label: str | None = None) -> list[CapitalHistoryEntry]:
        """Reward entries (reward_type set), optionally for one period label."""
        ...

    @abstractmethod
    async def has_reward_entry(self, user_id: str, period_label: str) -> bool:
        ...

    @abstractmethod
    async def apply_capital_bonus(self, entry: CapitalHistoryEntry) -> Account:
        """Atomically append ``entry`` and credit the account.

        Initial capital, cash and total assets each grow by ``entry.amount``;
        total return is recomputed against the new initial capital. The
        stored entry's ``new_total`` is the resulting initial capital.
        Raises NotFoundError for an unknown user and ConflictError when a
        reward entry for the same user and period label already exists.
        """
        ...


class SnapshotRepository(ABC):
    """Persisted copies of derived portfolio snapshots (a cache)."""

    @abstractmethod
    async def upsert_snapshot(self, user_id: str, snapshot: PortfolioSnapshot) -> None:
        ...

    @abstractmethod
    async def get_snapshot(self, user_id: str, day: date) -> PortfolioSnapshot | None:
        ...

    @abstractmethod
    async def get_latest_on_or_before(self, user_id: str, day: date) -> PortfolioSnapshot | None:
        ...

    @abstractmethod
    async def list_snapshots(self, user_id: str, start: date, end: date) -> list[PortfolioSnapshot]:
        ...

    @abstractmethod
    async def count_on(self, day: date) -> int:
        ...


class RankingRepository(ABC):
    """Stored rankings; at most one row per (user_id, period)."""

    @abstractmethod
    async def replace_period(self, period: RankingPeriod, rows: list[RankingRow]) -> None:
        """Delete every row of ``period`` and insert ``rows`` in one transaction."""
        ...

    @abstractmethod
    async def list_period(
        self,
        period: RankingPeriod,
        league: League | None = None,
        max_rank: int | None = None,
    ) -> list[RankingRow]:
        """Rows ordered by (league, rank)."""
        ...

    @abstractmethod
    async def get_user_row(self, user_id: str, period: RankingPeriod) -> RankingRow | None:
        ...

    @abstractmethod
    async def claim_reward(self, user_id: str, period: RankingPeriod, amount: Decimal) -> bool:
        """Set reward_given if not yet set. Returns True only for the caller that set it."""
        ...

    @abstractmethod
    async def release_reward(self, user_id: str, period: RankingPeriod) -> None:
        """Undo a claim whose payment failed."""
        ...


class AnalysisRepository(ABC):
    """Backfill stage artifacts: market context and per-user analysis."""

    @abstractmethod
    async def get_market_context(self, day: date) -> MarketContext | None:
        ...

    @abstractmethod
    async def save_market_context(self, context: MarketContext) -> None:
        ...

    @abstractmethod
    async def delete_market_context(self, day: date) -> None:
        ...

    @abstractmethod
    async def market_context_dates(self, start: date, end: date) -> set[date]:
        ...

    @abstractmethod
    async def save_portfolio_analysis(self, analysis: PortfolioAnalysis) -> None:
        ...

    @abstractmethod
    async def get_portfolio_analysis(self, user_id: str, day: date) -> PortfolioAnalysis | None:
        ...

    @abstractmethod
    async def delete_portfolio_analyses(self, day: date) -> int:
        ...
