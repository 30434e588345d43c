"""Portfolio history reconstruction from the immutable ledger.

Replays a user's transactions and capital adjustments day by day and values
the resulting positions against the historical candle for each day. This is
what makes every snapshot re-derivable after downtime.

For each day t (market timezone):
- cash_t = starting_capital + adjustments <= t - BUY totals <= t + SELL totals <= t
- holdings are valued at close(instrument, t) from the candle FOR t, never
  the live price
- total_return_t is measured against capital_t = starting_capital + adjustments <= t
- starting_capital = account.initial_capital - all capital adjustments

A missing candle falls back to the nearest prior candle, and if there is
none, to the last traded price on or before t. Either way the instrument is
listed in the snapshot's ``price_gaps``.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from simtrade.data.store import PriceHistoryStore
from simtrade.exceptions import DataIntegrityError, NotFoundError, ValidationError
from simtrade.logging import get_logger
from simtrade.models import (
    Account,
    CapitalHistoryEntry,
    Holding,
    PortfolioSnapshot,
    Transaction,
    TransactionType,
)
from simtrade.persistence.interfaces import AccountRepository, LedgerReader
from simtrade.portfolio.calculations import (
    calculate_avg_price,
    calculate_total_return,
    quantize_money,
)
from simtrade.trading_calendar import TradingCalendar, add_days, iter_days, trading_days

logger = get_logger(__name__)

WINDOW_PRESETS: dict[str, int | None] = {
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "1y": 365,
    "all": None,
}


def window_for(preset: str, today: date) -> tuple[date | None, date]:
    """Resolve a history window preset into (start, end). ``all`` has no start."""
    if preset not in WINDOW_PRESETS:
        raise ValidationError(
            f"Unknown history window {preset!r}; expected one of {', '.join(WINDOW_PRESETS)}"
        )
    days = WINDOW_PRESETS[preset]
    start = add_days(today, -days) if days is not None else None
    return start, today


@dataclass
class _Position:
    quantity: int
    avg_price: Decimal


class _LedgerReplay:
    """Incremental replay state, advanced one day at a time."""

    def __init__(
        self,
        starting_capital: Decimal,
        transactions: list[tuple[date, Transaction]],
        adjustments: list[tuple[date, CapitalHistoryEntry]],
    ) -> None:
        self.cash = starting_capital
        self.capital = starting_capital
        self.positions: dict[str, _Position] = {}
        self.last_trade_price: dict[str, Decimal] = {}
        self._transactions = transactions
        self._adjustments = adjustments
        self._tx_index = 0
        self._adj_index = 0

    def advance_to(self, day: date) -> list[Transaction]:
        """Apply everything dated on or before ``day``. Returns the transactions applied."""
        while self._adj_index < len(self._adjustments) and self._adjustments[self._adj_index][0] <= day:
            entry = self._adjustments[self._adj_index][1]
            self.cash += entry.amount
            self.capital += entry.amount
            self._adj_index += 1

        applied: list[Transaction] = []
        while self._tx_index < len(self._transactions) and self._transactions[self._tx_index][0] <= day:
            tx = self._transactions[self._tx_index][1]
            self._apply(tx)
            applied.append(tx)
            self._tx_index += 1
        return applied

    def _apply(self, tx: Transaction) -> None:
        self.last_trade_price[tx.instrument_id] = tx.price
        position = self.positions.get(tx.instrument_id)

        if tx.type == TransactionType.BUY:
            self.cash -= tx.total_amount
            if position is None:
                self.positions[tx.instrument_id] = _Position(tx.quantity, tx.price)
            else:
                position.avg_price = calculate_avg_price(
                    position.quantity, position.avg_price, tx.quantity, tx.price
                )
                position.quantity += tx.quantity
            return

        if position is None or tx.quantity > position.quantity:
            held = position.quantity if position else 0
            raise DataIntegrityError(
                f"Transaction {tx.id} sells {tx.quantity} {tx.instrument_id} but only {held} held"
            )
        self.cash += tx.total_amount
        position.quantity -= tx.quantity
        if position.quantity == 0:
            del self.positions[tx.instrument_id]


class PortfolioReconstructor:
    """Rebuilds point-in-time portfolio snapshots from ledger + prices + capital history.

    Args:
        accounts: Account repository (account record and capital history).
        ledger: Read-only transaction ledger.
        price_store: Historical candle lookups.
        calendar: Market calendar used to date every instant.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        ledger: LedgerReader,
        price_store: PriceHistoryStore,
        calendar: TradingCalendar,
    ) -> None:
        self._accounts = accounts
        self._ledger = ledger
        self._prices = price_store
        self._calendar = calendar

    async def reconstruct(
        self,
        user_id: str,
        start: date | None = None,
        end: date | None = None,
        trading_days_only: bool = True,
    ) -> list[PortfolioSnapshot]:
        """One snapshot per day in the window, oldest first.

        The window is clamped to [account creation date, today]. Raises
        NotFoundError for an unknown user and ValidationError when an explicit
        ``start`` is after an explicit ``end``.
        """
        if start is not None and end is not None and start > end:
            raise ValidationError(f"Window start {start} is after end {end}")

        account = await self._require_account(user_id)
        created = self._calendar.normalize(account.created_at)
        today = self._calendar.today()
        window_start = max(start, created) if start is not None else created
        window_end = min(end, today) if end is not None else today
        if window_start > window_end:
            return []

        days = (
            trading_days(window_start, window_end)
            if trading_days_only
            else list(iter_days(window_start, window_end))
        )
        if not days:
            return []

        replay = await self._build_replay(account, window_end)
        snapshots: list[PortfolioSnapshot] = []
        for day in days:
            replay.advance_to(day)
            snapshots.append(await self._value(replay, day))

        gaps = sum(1 for s in snapshots if s.price_gaps)
        logger.debug(
            "portfolio_reconstructed",
            user_id=user_id,
            start=window_start.isoformat(),
            end=window_end.isoformat(),
            days=len(snapshots),
            days_with_price_gaps=gaps,
        )
        return snapshots

    async def reconstruct_window(self, user_id: str, preset: str = "all") -> list[PortfolioSnapshot]:
        """Reconstruct over a named window (7d, 30d, 90d, 1y, all)."""
        start, end = window_for(preset, self._calendar.today())
        return await self.reconstruct(user_id, start, end)

    async def value_on(self, user_id: str, day: date) -> PortfolioSnapshot:
        """Snapshot for exactly one day (weekends included)."""
        snapshots = await self.reconstruct(user_id, day, day, trading_days_only=False)
        if not snapshots:
            raise ValidationError(
                f"{day.isoformat()} is outside the valuation window of {user_id}"
            )
        return snapshots[0]

    async def holdings_on(self, user_id: str, day: date) -> list[Holding]:
        """Derived positions at end of ``day`` with the prices used to value them."""
        account = await self._require_account(user_id)
        replay = await self._build_replay(account, day)
        replay.advance_to(day)
        holdings: list[Holding] = []
        for instrument_id in sorted(replay.positions):
            position = replay.positions[instrument_id]
            price, _ = await self._price_for(replay, instrument_id, day)
            holdings.append(Holding(instrument_id, position.quantity, position.avg_price, price))
        return holdings

    async def trades_on(self, user_id: str, day: date) -> list[Transaction]:
        """Ledger entries executed on ``day`` in the market timezone."""
        transactions = await self._ledger.list_transactions(
            user_id, until=self._calendar.end_of_day(day)
        )
        return [tx for tx in transactions if self._calendar.normalize(tx.executed_at) == day]

    # ──────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────

    async def _require_account(self, user_id: str) -> Account:
        account = await self._accounts.get_account(user_id)
        if account is None:
            raise NotFoundError(f"Account not found: {user_id}")
        return account

    async def _build_replay(self, account: Account, until: date) -> _LedgerReplay:
        transactions = await self._ledger.list_transactions(
            account.user_id, until=self._calendar.end_of_day(until)
        )
        history = await self._accounts.list_capital_history(account.user_id)
        starting_capital = account.initial_capital - sum(
            (e.amount for e in history), Decimal("0")
        )
        dated_tx = [(self._calendar.normalize(tx.executed_at), tx) for tx in transactions]
        dated_adj = sorted(
            ((self._calendar.normalize(e.created_at), e) for e in history),
            key=lambda pair: (pair[0], pair[1].created_at),
        )
        return _LedgerReplay(starting_capital, dated_tx, dated_adj)

    async def _price_for(
        self, replay: _LedgerReplay, instrument_id: str, day: date
    ) -> tuple[Decimal, bool]:
        """Close used to value ``instrument_id`` on ``day`` and whether it is a gap fill."""
        candle = await self._prices.get_candle(instrument_id, day)
        if candle is not None:
            return candle.close, False

        prior = await self._prices.get_latest_candle(instrument_id, day)
        if prior is not None:
            return prior.close, True

        last_trade = replay.last_trade_price.get(instrument_id)
        if last_trade is None:
            raise DataIntegrityError(f"No price available for held instrument {instrument_id}")
        return last_trade, True

    async def _value(self, replay: _LedgerReplay, day: date) -> PortfolioSnapshot:
        holdings_value = Decimal("0")
        gaps: list[str] = []
        for instrument_id in sorted(replay.positions):
            position = replay.positions[instrument_id]
            price, is_gap = await self._price_for(replay, instrument_id, day)
            if is_gap:
                gaps.append(instrument_id)
            holdings_value += price * position.quantity

        if gaps:
            logger.debug("valuation_price_gap", date=day.isoformat(), instruments=gaps)

        total_assets = replay.cash + holdings_value
        return PortfolioSnapshot(
            date=day,
            cash=quantize_money(replay.cash),
            holdings_value=quantize_money(holdings_value),
            total_assets=quantize_money(total_assets),
            total_return=calculate_total_return(total_assets, replay.capital),
            price_gaps=gaps,
        )
