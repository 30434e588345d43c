"""In-memory implementations of the repository ports.

Used by tests and dry runs. Semantics mirror the SQLite repositories:
upserts replace, ranking replacement is all-or-nothing, reward claims are
check-and-set, and reads return copies so callers cannot mutate state.
"""

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

from simtrade.data.models import Instrument, PriceCandle
from simtrade.exceptions import ConflictError, NotFoundError, ValidationError
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
from simtrade.persistence.interfaces import (
    AccountRepository,
    AnalysisRepository,
    CandleRepository,
    InstrumentRepository,
    LedgerReader,
    RankingRepository,
    SnapshotRepository,
)
from simtrade.portfolio.calculations import calculate_total_return
from simtrade.quotes.types import Quote


class InMemoryInstrumentRepository(InstrumentRepository):
    def __init__(self, instruments: list[Instrument] | None = None) -> None:
        self._instruments: dict[str, Instrument] = {}
        for instrument in instruments or []:
            self._instruments[instrument.instrument_id] = replace(instrument)

    async def list_instruments(self) -> list[Instrument]:
        return [replace(self._instruments[k]) for k in sorted(self._instruments)]

    async def get_instrument(self, instrument_id: str) -> Instrument | None:
        instrument = self._instruments.get(instrument_id)
        return replace(instrument) if instrument else None

    async def upsert_instrument(self, instrument: Instrument) -> None:
        self._instruments[instrument.instrument_id] = replace(instrument)

    async def update_quote(self, quote: Quote) -> None:
        instrument = self._instruments.get(quote.instrument_id)
        if instrument is None:
            raise NotFoundError(f"Instrument not found: {quote.instrument_id}")
        self._instruments[quote.instrument_id] = replace(
            instrument,
            open_price=quote.open,
            high_price=quote.high,
            low_price=quote.low,
            current_price=quote.current,
            volume=quote.volume,
            updated_at=quote.fetched_at,
        )


class InMemoryCandleRepository(CandleRepository):
    def __init__(self) -> None:
        self._candles: dict[tuple[str, date], PriceCandle] = {}

    async def get(self, instrument_id: str, day: date) -> PriceCandle | None:
        candle = self._candles.get((instrument_id, day))
        return replace(candle) if candle else None

    async def get_latest(self, instrument_id: str, on_or_before: date) -> PriceCandle | None:
        days = [d for (i, d) in self._candles if i == instrument_id and d <= on_or_before]
        if not days:
            return None
        return replace(self._candles[(instrument_id, max(days))])

    async def list_range(self, instrument_id: str, start: date, end: date) -> list[PriceCandle]:
        days = sorted(d for (i, d) in self._candles if i == instrument_id and start <= d <= end)
        return [replace(self._candles[(instrument_id, d)]) for d in days]

    async def list_on(self, day: date) -> list[PriceCandle]:
        ids = sorted(i for (i, d) in self._candles if d == day)
        return [replace(self._candles[(i, day)]) for i in ids]

    async def upsert(self, candle: PriceCandle) -> bool:
        key = (candle.instrument_id, candle.date)
        created = key not in self._candles
        self._candles[key] = replace(candle)
        return created


class InMemoryLedger(LedgerReader):
    def __init__(self, transactions: list[Transaction] | None = None) -> None:
        self._transactions: dict[str, Transaction] = {}
        for tx in transactions or []:
            self._transactions[tx.id] = tx

    async def list_transactions(
        self, user_id: str, until: datetime | None = None
    ) -> list[Transaction]:
        rows = [
            tx
            for tx in self._transactions.values()
            if tx.user_id == user_id and (until is None or tx.executed_at <= until)
        ]
        return sorted(rows, key=lambda tx: (tx.executed_at, tx.id))

    async def append_transaction(self, tx: Transaction) -> None:
        if tx.id in self._transactions:
            raise ConflictError(f"Transaction already recorded: {tx.id}")
        self._transactions[tx.id] = tx


class InMemoryAccountRepository(AccountRepository):
    def __init__(self, accounts: list[Account] | None = None) -> None:
        self._accounts: dict[str, Account] = {}
        self._history: list[CapitalHistoryEntry] = []
        for account in accounts or []:
            self._accounts[account.user_id] = replace(account)

    async def list_accounts(self) -> list[Account]:
        return [replace(self._accounts[k]) for k in sorted(self._accounts)]

    async def get_account(self, user_id: str) -> Account | None:
        account = self._accounts.get(user_id)
        return replace(account) if account else None

    async def save_account(self, account: Account) -> None:
        self._accounts[account.user_id] = replace(account)

    async def update_metrics(
        self, user_id: str, cash: Decimal, total_assets: Decimal, total_return: Decimal
    ) -> None:
        account = self._require(user_id)
        account.cash = cash
        account.total_assets = total_assets
        account.total_return = total_return

    async def update_league(self, user_id: str, league: League, updated_at: datetime) -> None:
        account = self._require(user_id)
        account.league = league
        account.league_updated_at = updated_at

    async def set_period_start_assets(
        self, user_id: str, period: RankingPeriod, amount: Decimal
    ) -> None:
        account = self._require(user_id)
        if period == RankingPeriod.WEEKLY:
            account.weekly_start_assets = amount
        elif period == RankingPeriod.MONTHLY:
            account.monthly_start_assets = amount
        else:
            raise ValidationError(f"No start-assets baseline for period {period.value}")

    async def list_capital_history(self, user_id: str) -> list[CapitalHistoryEntry]:
        rows = [e for e in self._history if e.user_id == user_id]
        return sorted(rows, key=lambda e: e.created_at)

    async def list_reward_entries(self, period_label: str | None = None) -> list[CapitalHistoryEntry]:
        return [
            e
            for e in self._history
            if e.reward_type is not None
            and (period_label is None or e.period_label == period_label)
        ]

    async def has_reward_entry(self, user_id: str, period_label: str) -> bool:
        return any(
            e.user_id == user_id and e.period_label == period_label and e.reward_type is not None
            for e in self._history
        )

    async def apply_capital_bonus(self, entry: CapitalHistoryEntry) -> Account:
        account = self._require(entry.user_id)
        if (
            entry.reward_type is not None
            and entry.period_label is not None
            and await self.has_reward_entry(entry.user_id, entry.period_label)
        ):
            raise ConflictError(
                f"Reward already recorded for {entry.user_id} in {entry.period_label}"
            )

        account.initial_capital += entry.amount
        account.cash += entry.amount
        account.total_assets += entry.amount
        account.total_return = calculate_total_return(account.total_assets, account.initial_capital)
        self._history.append(replace(entry, new_total=account.initial_capital))
        return replace(account)

    def _require(self, user_id: str) -> Account:
        account = self._accounts.get(user_id)
        if account is None:
            raise NotFoundError(f"Account not found: {user_id}")
        return account


class InMemorySnapshotRepository(SnapshotRepository):
    def __init__(self) -> None:
        self._snapshots: dict[tuple[str, date], PortfolioSnapshot] = {}

    async def upsert_snapshot(self, user_id: str, snapshot: PortfolioSnapshot) -> None:
        self._snapshots[(user_id, snapshot.date)] = replace(
            snapshot, price_gaps=list(snapshot.price_gaps)
        )

    async def get_snapshot(self, user_id: str, day: date) -> PortfolioSnapshot | None:
        return self._copy(self._snapshots.get((user_id, day)))

    async def get_latest_on_or_before(self, user_id: str, day: date) -> PortfolioSnapshot | None:
        days = [d for (u, d) in self._snapshots if u == user_id and d <= day]
        return self._copy(self._snapshots[(user_id, max(days))]) if days else None

    async def list_snapshots(self, user_id: str, start: date, end: date) -> list[PortfolioSnapshot]:
        days = sorted(d for (u, d) in self._snapshots if u == user_id and start <= d <= end)
        return [self._copy(self._snapshots[(user_id, d)]) for d in days]  # type: ignore[misc]

    async def count_on(self, day: date) -> int:
        return sum(1 for (_, d) in self._snapshots if d == day)

    @staticmethod
    def _copy(snapshot: PortfolioSnapshot | None) -> PortfolioSnapshot | None:
        if snapshot is None:
            return None
        return replace(snapshot, price_gaps=list(snapshot.price_gaps))


class InMemoryRankingRepository(RankingRepository):
    def __init__(self) -> None:
        self._rows: dict[tuple[str, RankingPeriod], RankingRow] = {}

    async def replace_period(self, period: RankingPeriod, rows: list[RankingRow]) -> None:
        keys = [(r.user_id, r.period) for r in rows]
        if len(set(keys)) != len(keys):
            raise ConflictError(f"Duplicate ranking row for period {period.value}")
        self._rows = {k: v for k, v in self._rows.items() if k[1] != period}
        for row in rows:
            self._rows[(row.user_id, row.period)] = replace(row)

    async def list_period(
        self,
        period: RankingPeriod,
        league: League | None = None,
        max_rank: int | None = None,
    ) -> list[RankingRow]:
        rows = [
            replace(r)
            for r in self._rows.values()
            if r.period == period
            and (league is None or r.league == league)
            and (max_rank is None or r.rank <= max_rank)
        ]
        return sorted(rows, key=lambda r: (r.league.value, r.rank))

    async def get_user_row(self, user_id: str, period: RankingPeriod) -> RankingRow | None:
        row = self._rows.get((user_id, period))
        return replace(row) if row else None

    async def claim_reward(self, user_id: str, period: RankingPeriod, amount: Decimal) -> bool:
        row = self._rows.get((user_id, period))
        if row is None or row.reward_given:
            return False
        row.reward_given = True
        row.reward_amount = amount
        return True

    async def release_reward(self, user_id: str, period: RankingPeriod) -> None:
        row = self._rows.get((user_id, period))
        if row is not None:
            row.reward_given = False
            row.reward_amount = Decimal("0")


class InMemoryAnalysisRepository(AnalysisRepository):
    def __init__(self) -> None:
        self._contexts: dict[date, MarketContext] = {}
        self._analyses: dict[tuple[str, date], PortfolioAnalysis] = {}

    async def get_market_context(self, day: date) -> MarketContext | None:
        context = self._contexts.get(day)
        return replace(context) if context else None

    async def save_market_context(self, context: MarketContext) -> None:
        self._contexts[context.date] = replace(context)

    async def delete_market_context(self, day: date) -> None:
        self._contexts.pop(day, None)

    async def market_context_dates(self, start: date, end: date) -> set[date]:
        return {d for d in self._contexts if start <= d <= end}

    async def save_portfolio_analysis(self, analysis: PortfolioAnalysis) -> None:
        self._analyses[(analysis.user_id, analysis.date)] = replace(analysis)

    async def get_portfolio_analysis(self, user_id: str, day: date) -> PortfolioAnalysis | None:
        analysis = self._analyses.get((user_id, day))
        return replace(analysis) if analysis else None

    async def delete_portfolio_analyses(self, day: date) -> int:
        keys = [k for k in self._analyses if k[1] == day]
        for key in keys:
            del self._analyses[key]
        return len(keys)
