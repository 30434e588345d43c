"""aiosqlite implementations of the repository ports.

All SQL is isolated behind these classes. Each repository wraps the shared
SimTradeDatabase connection.

CRITICAL: All monetary values stored as TEXT in SQLite, restored as Decimal on read.
"""

import json
import sqlite3
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

from simtrade.data.database import SimTradeDatabase
from simtrade.data.models import Instrument, PriceCandle
from simtrade.exceptions import ConflictError, NotFoundError, ValidationError
from simtrade.logging import get_logger
from simtrade.models import (
    Account,
    CapitalChangeReason,
    CapitalHistoryEntry,
    League,
    MarketContext,
    PortfolioAnalysis,
    PortfolioSnapshot,
    RankingPeriod,
    RankingRow,
    RewardType,
    Transaction,
    TransactionType,
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

logger = get_logger(__name__)


# ──────────────────────────────────────────────
# Column conversion helpers
# ──────────────────────────────────────────────


def _to_ms(instant: datetime) -> int:
    return int(instant.timestamp() * 1000)


def _from_ms(ms: int | None) -> datetime | None:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def _dec(text: str | None) -> Decimal | None:
    return Decimal(text) if text is not None else None


def _text(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


class SqliteInstrumentRepository(InstrumentRepository):
    def __init__(self, database: SimTradeDatabase) -> None:
        self._database = database

    _COLUMNS = (
        "instrument_id, name, market, open_price, high_price, low_price, "
        "current_price, volume, updated_at_ms"
    )

    async def list_instruments(self) -> list[Instrument]:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM instruments ORDER BY instrument_id ASC"
        )
        return [self._row_to_instrument(row) for row in await cursor.fetchall()]

    async def get_instrument(self, instrument_id: str) -> Instrument | None:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM instruments WHERE instrument_id = ?",
            (instrument_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_instrument(row) if row else None

    async def upsert_instrument(self, instrument: Instrument) -> None:
        await self._database.db.execute(
            f"INSERT OR REPLACE INTO instruments ({self._COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                instrument.instrument_id,
                instrument.name,
                instrument.market,
                _text(instrument.open_price),
                _text(instrument.high_price),
                _text(instrument.low_price),
                _text(instrument.current_price),
                instrument.volume,
                _to_ms(instrument.updated_at) if instrument.updated_at else None,
            ),
        )
        await self._database.db.commit()

    async def update_quote(self, quote: Quote) -> None:
        cursor = await self._database.db.execute(
            "UPDATE instruments SET open_price = ?, high_price = ?, low_price = ?, "
            "current_price = ?, volume = ?, updated_at_ms = ? WHERE instrument_id = ?",
            (
                _text(quote.open),
                _text(quote.high),
                _text(quote.low),
                str(quote.current),
                quote.volume,
                _to_ms(quote.fetched_at),
                quote.instrument_id,
            ),
        )
        await self._database.db.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"Instrument not found: {quote.instrument_id}")

    @staticmethod
    def _row_to_instrument(row) -> Instrument:  # type: ignore[no-untyped-def]
        return Instrument(
            instrument_id=row[0],
            name=row[1],
            market=row[2],
            open_price=_dec(row[3]),
            high_price=_dec(row[4]),
            low_price=_dec(row[5]),
            current_price=_dec(row[6]),
            volume=row[7],
            updated_at=_from_ms(row[8]),
        )


class SqliteCandleRepository(CandleRepository):
    def __init__(self, database: SimTradeDatabase) -> None:
        self._database = database

    _COLUMNS = "instrument_id, date, open, high, low, close, volume"

    async def get(self, instrument_id: str, day: date) -> PriceCandle | None:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM price_candles WHERE instrument_id = ? AND date = ?",
            (instrument_id, day.isoformat()),
        )
        row = await cursor.fetchone()
        return self._row_to_candle(row) if row else None

    async def get_latest(self, instrument_id: str, on_or_before: date) -> PriceCandle | None:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM price_candles "
            "WHERE instrument_id = ? AND date <= ? ORDER BY date DESC LIMIT 1",
            (instrument_id, on_or_before.isoformat()),
        )
        row = await cursor.fetchone()
        return self._row_to_candle(row) if row else None

    async def list_range(self, instrument_id: str, start: date, end: date) -> list[PriceCandle]:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM price_candles "
            "WHERE instrument_id = ? AND date >= ? AND date <= ? ORDER BY date ASC",
            (instrument_id, start.isoformat(), end.isoformat()),
        )
        return [self._row_to_candle(row) for row in await cursor.fetchall()]

    async def list_on(self, day: date) -> list[PriceCandle]:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM price_candles WHERE date = ? ORDER BY instrument_id ASC",
            (day.isoformat(),),
        )
        return [self._row_to_candle(row) for row in await cursor.fetchall()]

    async def upsert(self, candle: PriceCandle) -> bool:
        db = self._database.db
        cursor = await db.execute(
            "SELECT 1 FROM price_candles WHERE instrument_id = ? AND date = ?",
            (candle.instrument_id, candle.date.isoformat()),
        )
        exists = await cursor.fetchone() is not None
        await db.execute(
            f"INSERT INTO price_candles ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(instrument_id, date) DO UPDATE SET "
            "open = excluded.open, high = excluded.high, low = excluded.low, "
            "close = excluded.close, volume = excluded.volume",
            (
                candle.instrument_id,
                candle.date.isoformat(),
                str(candle.open),
                str(candle.high),
                str(candle.low),
                str(candle.close),
                candle.volume,
            ),
        )
        await db.commit()
        return not exists

    @staticmethod
    def _row_to_candle(row) -> PriceCandle:  # type: ignore[no-untyped-def]
        return PriceCandle(
            instrument_id=row[0],
            date=date.fromisoformat(row[1]),
            open=Decimal(row[2]),
            high=Decimal(row[3]),
            low=Decimal(row[4]),
            close=Decimal(row[5]),
            volume=row[6],
        )


class SqliteLedger(LedgerReader):
    """Ledger reader. ``append_transaction`` serves the out-of-scope trading flow and tests."""

    def __init__(self, database: SimTradeDatabase) -> None:
        self._database = database

    async def list_transactions(
        self, user_id: str, until: datetime | None = None
    ) -> list[Transaction]:
        conditions = ["user_id = ?"]
        params: list = [user_id]
        if until is not None:
            conditions.append("executed_at_ms <= ?")
            params.append(_to_ms(until))

        where = " AND ".join(conditions)
        cursor = await self._database.db.execute(
            f"SELECT id, user_id, type, instrument_id, quantity, price, fee, executed_at_ms "
            f"FROM transactions WHERE {where} ORDER BY executed_at_ms ASC, id ASC",
            params,
        )
        rows = await cursor.fetchall()
        return [
            Transaction(
                id=row[0],
                user_id=row[1],
                type=TransactionType(row[2]),
                instrument_id=row[3],
                quantity=row[4],
                price=Decimal(row[5]),
                fee=Decimal(row[6]),
                executed_at=_from_ms(row[7]),  # type: ignore[arg-type]
            )
            for row in rows
        ]

    async def append_transaction(self, tx: Transaction) -> None:
        try:
            await self._database.db.execute(
                "INSERT INTO transactions "
                "(id, user_id, type, instrument_id, quantity, price, fee, executed_at_ms) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    tx.id,
                    tx.user_id,
                    tx.type.value,
                    tx.instrument_id,
                    tx.quantity,
                    str(tx.price),
                    str(tx.fee),
                    _to_ms(tx.executed_at),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"Transaction already recorded: {tx.id}") from e
        await self._database.db.commit()


class SqliteAccountRepository(AccountRepository):
    def __init__(self, database: SimTradeDatabase) -> None:
        self._database = database

    _COLUMNS = (
        "user_id, username, league, league_updated_at_ms, initial_capital, cash, "
        "total_assets, total_return, created_at_ms, weekly_start_assets, monthly_start_assets"
    )
    _HISTORY_COLUMNS = (
        "user_id, amount, reason, new_total, created_at_ms, reward_type, "
        "reward_rank, period_label, league, description"
    )

    # ──────────────────────────────────────────────
    # Accounts
    # ──────────────────────────────────────────────

    async def list_accounts(self) -> list[Account]:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM accounts ORDER BY user_id ASC"
        )
        return [self._row_to_account(row) for row in await cursor.fetchall()]

    async def get_account(self, user_id: str) -> Account | None:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM accounts WHERE user_id = ?", (user_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_account(row) if row else None

    async def save_account(self, account: Account) -> None:
        await self._database.db.execute(
            f"INSERT OR REPLACE INTO accounts ({self._COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                account.user_id,
                account.username,
                account.league.value,
                _to_ms(account.league_updated_at) if account.league_updated_at else None,
                str(account.initial_capital),
                str(account.cash),
                str(account.total_assets),
                str(account.total_return),
                _to_ms(account.created_at),
                _text(account.weekly_start_assets),
                _text(account.monthly_start_assets),
            ),
        )
        await self._database.db.commit()

    async def update_metrics(
        self, user_id: str, cash: Decimal, total_assets: Decimal, total_return: Decimal
    ) -> None:
        await self._update(
            user_id,
            "cash = ?, total_assets = ?, total_return = ?",
            (str(cash), str(total_assets), str(total_return)),
        )

    async def update_league(self, user_id: str, league: League, updated_at: datetime) -> None:
        await self._update(
            user_id,
            "league = ?, league_updated_at_ms = ?",
            (league.value, _to_ms(updated_at)),
        )

    async def set_period_start_assets(
        self, user_id: str, period: RankingPeriod, amount: Decimal
    ) -> None:
        if period == RankingPeriod.WEEKLY:
            column = "weekly_start_assets"
        elif period == RankingPeriod.MONTHLY:
            column = "monthly_start_assets"
        else:
            raise ValidationError(f"No start-assets baseline for period {period.value}")
        await self._update(user_id, f"{column} = ?", (str(amount),))

    async def _update(self, user_id: str, assignments: str, params: tuple) -> None:
        cursor = await self._database.db.execute(
            f"UPDATE accounts SET {assignments} WHERE user_id = ?",
            (*params, user_id),
        )
        await self._database.db.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"Account not found: {user_id}")

    # ──────────────────────────────────────────────
    # Capital history
    # ──────────────────────────────────────────────

    async def list_capital_history(self, user_id: str) -> list[CapitalHistoryEntry]:
        cursor = await self._database.db.execute(
            f"SELECT {self._HISTORY_COLUMNS} FROM capital_history "
            "WHERE user_id = ? ORDER BY created_at_ms ASC, id ASC",
            (user_id,),
        )
        return [self._row_to_entry(row) for row in await cursor.fetchall()]

    async def list_reward_entries(self, period_label: str | None = None) -> list[CapitalHistoryEntry]:
        conditions = ["reward_type IS NOT NULL"]
        params: list = []
        if period_label is not None:
            conditions.append("period_label = ?")
            params.append(period_label)
        where = " AND ".join(conditions)
        cursor = await self._database.db.execute(
            f"SELECT {self._HISTORY_COLUMNS} FROM capital_history "
            f"WHERE {where} ORDER BY created_at_ms ASC, id ASC",
            params,
        )
        return [self._row_to_entry(row) for row in await cursor.fetchall()]

    async def has_reward_entry(self, user_id: str, period_label: str) -> bool:
        cursor = await self._database.db.execute(
            "SELECT 1 FROM capital_history "
            "WHERE user_id = ? AND period_label = ? AND reward_type IS NOT NULL LIMIT 1",
            (user_id, period_label),
        )
        return await cursor.fetchone() is not None

    async def apply_capital_bonus(self, entry: CapitalHistoryEntry) -> Account:
        account = await self.get_account(entry.user_id)
        if account is None:
            raise NotFoundError(f"Account not found: {entry.user_id}")

        initial_capital = account.initial_capital + entry.amount
        cash = account.cash + entry.amount
        total_assets = account.total_assets + entry.amount
        total_return = calculate_total_return(total_assets, initial_capital)
        stored = replace(entry, new_total=initial_capital)

        db = self._database.db
        try:
            await db.execute(
                f"INSERT INTO capital_history ({self._HISTORY_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    stored.user_id,
                    str(stored.amount),
                    stored.reason.value,
                    str(stored.new_total),
                    _to_ms(stored.created_at),
                    stored.reward_type.value if stored.reward_type else None,
                    stored.reward_rank,
                    stored.period_label,
                    stored.league.value if stored.league else None,
                    stored.description,
                ),
            )
            await db.execute(
                "UPDATE accounts SET initial_capital = ?, cash = ?, total_assets = ?, "
                "total_return = ? WHERE user_id = ?",
                (
                    str(initial_capital),
                    str(cash),
                    str(total_assets),
                    str(total_return),
                    entry.user_id,
                ),
            )
            await db.commit()
        except sqlite3.IntegrityError as e:
            await db.rollback()
            raise ConflictError(
                f"Reward already recorded for {entry.user_id} in {entry.period_label}"
            ) from e

        logger.debug(
            "capital_bonus_applied",
            user_id=entry.user_id,
            amount=str(entry.amount),
            new_initial_capital=str(initial_capital),
        )
        return replace(
            account,
            initial_capital=initial_capital,
            cash=cash,
            total_assets=total_assets,
            total_return=total_return,
        )

    @staticmethod
    def _row_to_account(row) -> Account:  # type: ignore[no-untyped-def]
        return Account(
            user_id=row[0],
            username=row[1],
            league=League(row[2]),
            league_updated_at=_from_ms(row[3]),
            initial_capital=Decimal(row[4]),
            cash=Decimal(row[5]),
            total_assets=Decimal(row[6]),
            total_return=Decimal(row[7]),
            created_at=_from_ms(row[8]),  # type: ignore[arg-type]
            weekly_start_assets=_dec(row[9]),
            monthly_start_assets=_dec(row[10]),
        )

    @staticmethod
    def _row_to_entry(row) -> CapitalHistoryEntry:  # type: ignore[no-untyped-def]
        return CapitalHistoryEntry(
            user_id=row[0],
            amount=Decimal(row[1]),
            reason=CapitalChangeReason(row[2]),
            new_total=Decimal(row[3]),
            created_at=_from_ms(row[4]),  # type: ignore[arg-type]
            reward_type=RewardType(row[5]) if row[5] else None,
            reward_rank=row[6],
            period_label=row[7],
            league=League(row[8]) if row[8] else None,
            description=row[9],
        )


class SqliteSnapshotRepository(SnapshotRepository):
    def __init__(self, database: SimTradeDatabase) -> None:
        self._database = database

    _COLUMNS = "date, cash, holdings_value, total_assets, total_return, price_gaps"

    async def upsert_snapshot(self, user_id: str, snapshot: PortfolioSnapshot) -> None:
        await self._database.db.execute(
            f"INSERT OR REPLACE INTO portfolio_snapshots (user_id, {self._COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                user_id,
                snapshot.date.isoformat(),
                str(snapshot.cash),
                str(snapshot.holdings_value),
                str(snapshot.total_assets),
                str(snapshot.total_return),
                json.dumps(snapshot.price_gaps),
            ),
        )
        await self._database.db.commit()

    async def get_snapshot(self, user_id: str, day: date) -> PortfolioSnapshot | None:
        return await self._fetch_one(
            "WHERE user_id = ? AND date = ?", (user_id, day.isoformat())
        )

    async def get_latest_on_or_before(self, user_id: str, day: date) -> PortfolioSnapshot | None:
        return await self._fetch_one(
            "WHERE user_id = ? AND date <= ? ORDER BY date DESC LIMIT 1",
            (user_id, day.isoformat()),
        )

    async def list_snapshots(self, user_id: str, start: date, end: date) -> list[PortfolioSnapshot]:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM portfolio_snapshots "
            "WHERE user_id = ? AND date >= ? AND date <= ? ORDER BY date ASC",
            (user_id, start.isoformat(), end.isoformat()),
        )
        return [self._row_to_snapshot(row) for row in await cursor.fetchall()]

    async def count_on(self, day: date) -> int:
        cursor = await self._database.db.execute(
            "SELECT COUNT(*) FROM portfolio_snapshots WHERE date = ?", (day.isoformat(),)
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def _fetch_one(self, clause: str, params: tuple) -> PortfolioSnapshot | None:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM portfolio_snapshots {clause}", params
        )
        row = await cursor.fetchone()
        return self._row_to_snapshot(row) if row else None

    @staticmethod
    def _row_to_snapshot(row) -> PortfolioSnapshot:  # type: ignore[no-untyped-def]
        return PortfolioSnapshot(
            date=date.fromisoformat(row[0]),
            cash=Decimal(row[1]),
            holdings_value=Decimal(row[2]),
            total_assets=Decimal(row[3]),
            total_return=Decimal(row[4]),
            price_gaps=json.loads(row[5]),
        )


class SqliteRankingRepository(RankingRepository):
    def __init__(self, database: SimTradeDatabase) -> None:
        self._database = database

    _COLUMNS = (
        "user_id, period, league, rank, period_return, reward_given, reward_amount, as_of"
    )

    async def replace_period(self, period: RankingPeriod, rows: list[RankingRow]) -> None:
        db = self._database.db
        data = [
            (
                r.user_id,
                r.period.value,
                r.league.value,
                r.rank,
                str(r.period_return),
                1 if r.reward_given else 0,
                str(r.reward_amount),
                r.as_of.isoformat(),
            )
            for r in rows
        ]
        try:
            await db.execute("DELETE FROM rankings WHERE period = ?", (period.value,))
            if data:
                await db.executemany(
                    f"INSERT INTO rankings ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    data,
                )
            await db.commit()
        except sqlite3.IntegrityError as e:
            await db.rollback()
            raise ConflictError(f"Duplicate ranking row for period {period.value}") from e

        logger.debug("rankings_replaced", period=period.value, rows=len(rows))

    async def list_period(
        self,
        period: RankingPeriod,
        league: League | None = None,
        max_rank: int | None = None,
    ) -> list[RankingRow]:
        conditions = ["period = ?"]
        params: list = [period.value]
        if league is not None:
            conditions.append("league = ?")
            params.append(league.value)
        if max_rank is not None:
            conditions.append("rank <= ?")
            params.append(max_rank)

        where = " AND ".join(conditions)
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM rankings WHERE {where} "
            "ORDER BY league ASC, rank ASC",
            params,
        )
        return [self._row_to_ranking(row) for row in await cursor.fetchall()]

    async def get_user_row(self, user_id: str, period: RankingPeriod) -> RankingRow | None:
        cursor = await self._database.db.execute(
            f"SELECT {self._COLUMNS} FROM rankings WHERE user_id = ? AND period = ?",
            (user_id, period.value),
        )
        row = await cursor.fetchone()
        return self._row_to_ranking(row) if row else None

    async def claim_reward(self, user_id: str, period: RankingPeriod, amount: Decimal) -> bool:
        cursor = await self._database.db.execute(
            "UPDATE rankings SET reward_given = 1, reward_amount = ? "
            "WHERE user_id = ? AND period = ? AND reward_given = 0",
            (str(amount), user_id, period.value),
        )
        await self._database.db.commit()
        return cursor.rowcount == 1

    async def release_reward(self, user_id: str, period: RankingPeriod) -> None:
        await self._database.db.execute(
            "UPDATE rankings SET reward_given = 0, reward_amount = '0' "
            "WHERE user_id = ? AND period = ?",
            (user_id, period.value),
        )
        await self._database.db.commit()

    @staticmethod
    def _row_to_ranking(row) -> RankingRow:  # type: ignore[no-untyped-def]
        return RankingRow(
            user_id=row[0],
            period=RankingPeriod(row[1]),
            league=League(row[2]),
            rank=row[3],
            period_return=Decimal(row[4]),
            reward_given=bool(row[5]),
            reward_amount=Decimal(row[6]),
            as_of=date.fromisoformat(row[7]),
        )


class SqliteAnalysisRepository(AnalysisRepository):
    def __init__(self, database: SimTradeDatabase) -> None:
        self._database = database

    _CONTEXT_COLUMNS = (
        "date, instrument_count, advancers, decliners, unchanged, "
        "average_change_pct, top_gainer, top_loser, cost"
    )
    _ANALYSIS_COLUMNS = (
        "user_id, date, total_assets, day_change, day_change_pct, "
        "holdings_count, trades_count, summary, cost"
    )

    async def get_market_context(self, day: date) -> MarketContext | None:
        cursor = await self._database.db.execute(
            f"SELECT {self._CONTEXT_COLUMNS} FROM market_contexts WHERE date = ?",
            (day.isoformat(),),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return MarketContext(
            date=date.fromisoformat(row[0]),
            instrument_count=row[1],
            advancers=row[2],
            decliners=row[3],
            unchanged=row[4],
            average_change_pct=Decimal(row[5]),
            top_gainer=row[6],
            top_loser=row[7],
            cost=Decimal(row[8]),
        )

    async def save_market_context(self, context: MarketContext) -> None:
        await self._database.db.execute(
            f"INSERT OR REPLACE INTO market_contexts ({self._CONTEXT_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                context.date.isoformat(),
                context.instrument_count,
                context.advancers,
                context.decliners,
                context.unchanged,
                str(context.average_change_pct),
                context.top_gainer,
                context.top_loser,
                str(context.cost),
            ),
        )
        await self._database.db.commit()

    async def delete_market_context(self, day: date) -> None:
        await self._database.db.execute(
            "DELETE FROM market_contexts WHERE date = ?", (day.isoformat(),)
        )
        await self._database.db.commit()

    async def market_context_dates(self, start: date, end: date) -> set[date]:
        cursor = await self._database.db.execute(
            "SELECT date FROM market_contexts WHERE date >= ? AND date <= ?",
            (start.isoformat(), end.isoformat()),
        )
        return {date.fromisoformat(row[0]) for row in await cursor.fetchall()}

    async def save_portfolio_analysis(self, analysis: PortfolioAnalysis) -> None:
        await self._database.db.execute(
            f"INSERT OR REPLACE INTO portfolio_analyses ({self._ANALYSIS_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                analysis.user_id,
                analysis.date.isoformat(),
                str(analysis.total_assets),
                str(analysis.day_change),
                str(analysis.day_change_pct),
                analysis.holdings_count,
                analysis.trades_count,
                analysis.summary,
                str(analysis.cost),
            ),
        )
        await self._database.db.commit()

    async def get_portfolio_analysis(self, user_id: str, day: date) -> PortfolioAnalysis | None:
        cursor = await self._database.db.execute(
            f"SELECT {self._ANALYSIS_COLUMNS} FROM portfolio_analyses "
            "WHERE user_id = ? AND date = ?",
            (user_id, day.isoformat()),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return PortfolioAnalysis(
            user_id=row[0],
            date=date.fromisoformat(row[1]),
            total_assets=Decimal(row[2]),
            day_change=Decimal(row[3]),
            day_change_pct=Decimal(row[4]),
            holdings_count=row[5],
            trades_count=row[6],
            summary=row[7],
            cost=Decimal(row[8]),
        )

    async def delete_portfolio_analyses(self, day: date) -> int:
        cursor = await self._database.db.execute(
            "DELETE FROM portfolio_analyses WHERE date = ?", (day.isoformat(),)
        )
        await self._database.db.commit()
        return cursor.rowcount
