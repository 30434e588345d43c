"""Ranking engine: period returns, per-league ordering and full-replace storage.

Ranks are recomputed from scratch on every run. For a period, every row is
deleted and the fresh top-N per league is inserted in one repository call,
so re-running with the same inputs stores identical rows.

Tie-break: accounts are read ordered by user_id and sorted with a stable
sort on period return, so equal returns keep user_id order.
"""

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from simtrade.config import RankingSettings
from simtrade.exceptions import SimTradeError
from simtrade.logging import get_logger
from simtrade.models import (
    Account,
    BatchSummary,
    ItemResult,
    League,
    RankingPeriod,
    RankingRow,
)
from simtrade.persistence.interfaces import AccountRepository, RankingRepository, SnapshotRepository
from simtrade.portfolio.calculations import calculate_period_return
from simtrade.trading_calendar import TradingCalendar, add_days, month_start, week_start

logger = get_logger(__name__)


@dataclass
class _Scored:
    account: Account
    period_return: Decimal


class RankingEngine:
    """Computes and stores WEEKLY / MONTHLY / ALL_TIME rankings.

    Args:
        accounts: Account repository (league and tracked metrics).
        snapshots: Persisted snapshots used for baselines and historical values.
        rankings: Ranking storage.
        calendar: Market calendar deciding "today" and period starts.
        settings: Ranking parameters (top_n per league).
    """

    def __init__(
        self,
        accounts: AccountRepository,
        snapshots: SnapshotRepository,
        rankings: RankingRepository,
        calendar: TradingCalendar,
        settings: RankingSettings | None = None,
    ) -> None:
        self._accounts = accounts
        self._snapshots = snapshots
        self._rankings = rankings
        self._calendar = calendar
        self._settings = settings or RankingSettings()

    async def compute_rankings(self, period: RankingPeriod, as_of: date | None = None) -> BatchSummary:
        """Recompute and store one period's rankings.

        Accounts whose return cannot be computed are reported as failed and
        left out. Accounts with no valuation for a past ``as_of`` and those
        below the top-N cut are reported as skipped.
        """
        target = as_of if as_of is not None else self._calendar.today()
        summary = BatchSummary(operation=f"rankings_{period.value.lower()}")
        start_time = time.monotonic()

        by_league: dict[League, list[_Scored]] = {league: [] for league in League}
        excluded: list[ItemResult] = []
        for account in await self._accounts.list_accounts():
            try:
                period_return = await self.period_return(account, period, target)
            except SimTradeError as e:
                logger.warning(
                    "period_return_failed",
                    user_id=account.user_id,
                    period=period.value,
                    error=str(e),
                )
                excluded.append(ItemResult.failed(account.user_id, e))
                continue
            if period_return is None:
                excluded.append(ItemResult.skipped(account.user_id, "no_snapshot_as_of"))
                continue
            by_league[account.league].append(_Scored(account, period_return))

        rows: list[RankingRow] = []
        outcomes: list[ItemResult] = []
        for league in League:
            ordered = sorted(by_league[league], key=lambda s: s.period_return, reverse=True)
            for rank, scored in enumerate(ordered, 1):
                user_id = scored.account.user_id
                if rank > self._settings.top_n:
                    outcomes.append(ItemResult.skipped(user_id, "below_top_n", rank=rank))
                    continue
                rows.append(
                    RankingRow(
                        user_id=user_id,
                        period=period,
                        league=league,
                        rank=rank,
                        period_return=scored.period_return,
                        as_of=target,
                    )
                )
                outcomes.append(
                    ItemResult.ok(
                        user_id,
                        league=league.value,
                        rank=rank,
                        period_return=str(scored.period_return),
                    )
                )

        await self._rankings.replace_period(period, rows)

        for result in sorted(outcomes + excluded, key=lambda r: r.key):
            summary.record(result)
        summary.duration_seconds = round(time.monotonic() - start_time, 3)
        logger.info(
            "rankings_computed",
            period=period.value,
            as_of=target.isoformat(),
            stored=len(rows),
            failed=summary.failed,
            below_cut=summary.skipped,
        )
        return summary

    async def compute_all(self, as_of: date | None = None) -> list[BatchSummary]:
        """Recompute every period."""
        return [await self.compute_rankings(period, as_of) for period in RankingPeriod]

    async def period_return(
        self, account: Account, period: RankingPeriod, as_of: date
    ) -> Decimal | None:
        """Return (%) of ``account`` over ``period`` ending at ``as_of``.

        Today is valued from the tracked account metrics, a past ``as_of``
        from the last snapshot on or before it. Returns None for a past
        ``as_of`` with no such snapshot; live metrics never stand in for a
        past date. WEEKLY and MONTHLY compare against the assets at the
        period start (see ``_period_baseline``); a missing or zero baseline
        yields 0.
        """
        if as_of >= self._calendar.today():
            total_assets, total_return = account.total_assets, account.total_return
        else:
            snapshot = await self._snapshots.get_latest_on_or_before(account.user_id, as_of)
            if snapshot is None:
                return None
            total_assets, total_return = snapshot.total_assets, snapshot.total_return

        if period == RankingPeriod.ALL_TIME:
            return total_return

        baseline = await self._period_baseline(account, period, as_of)
        return calculate_period_return(total_assets, baseline)

    async def _period_baseline(
        self, account: Account, period: RankingPeriod, as_of: date
    ) -> Decimal | None:
        """Total assets when the period containing ``as_of`` began.

        In the running period the stored start assets come first: the period
        reset writes them after that midnight's rewards are paid. Otherwise,
        or when none are stored, the last snapshot before the period start.
        """
        today = self._calendar.today()
        if period == RankingPeriod.WEEKLY:
            start, running, stored = week_start(as_of), week_start(today), account.weekly_start_assets
        else:
            start, running, stored = month_start(as_of), month_start(today), account.monthly_start_assets

        if start == running and stored is not None:
            return stored
        before = await self._snapshots.get_latest_on_or_before(account.user_id, add_days(start, -1))
        return before.total_assets if before else None

    # ──────────────────────────────────────────────
    # Read APIs
    # ──────────────────────────────────────────────

    async def get_rankings(
        self,
        period: RankingPeriod,
        league: League | None = None,
        limit: int = 100,
    ) -> list[RankingRow]:
        rows = await self._rankings.list_period(period, league=league)
        return rows[:limit]

    async def get_user_rank(self, user_id: str, period: RankingPeriod) -> RankingRow | None:
        return await self._rankings.get_user_row(user_id, period)
