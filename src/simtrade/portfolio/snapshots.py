"""Daily snapshot persistence, account metric refresh and period baselines.

Snapshots are a cache of the reconstructor's output: writing one twice for
the same (user, date) replaces it with the same values.
"""

import time
from datetime import date

from simtrade.exceptions import NotFoundError, SimTradeError, ValidationError
from simtrade.logging import get_logger
from simtrade.models import Account, BatchSummary, ItemResult, PortfolioSnapshot, RankingPeriod
from simtrade.persistence.interfaces import AccountRepository, SnapshotRepository
from simtrade.portfolio.reconstructor import PortfolioReconstructor
from simtrade.trading_calendar import TradingCalendar

logger = get_logger(__name__)


class SnapshotService:
    """Creates and reads persisted daily portfolio snapshots.

    Args:
        accounts: Account repository.
        snapshots: Snapshot repository (the cache).
        reconstructor: Source of truth for every valuation.
        calendar: Market calendar deciding "today".
    """

    def __init__(
        self,
        accounts: AccountRepository,
        snapshots: SnapshotRepository,
        reconstructor: PortfolioReconstructor,
        calendar: TradingCalendar,
    ) -> None:
        self._accounts = accounts
        self._snapshots = snapshots
        self._reconstructor = reconstructor
        self._calendar = calendar

    async def create_daily_snapshot(self, user_id: str, day: date | None = None) -> PortfolioSnapshot:
        """Reconstruct and persist the snapshot for one user and day (default today)."""
        target = day if day is not None else self._calendar.today()
        snapshot = await self._reconstructor.value_on(user_id, target)
        await self._snapshots.upsert_snapshot(user_id, snapshot)
        return snapshot

    async def create_all_daily_snapshots(self, day: date | None = None) -> BatchSummary:
        """Snapshot every account for ``day``. Accounts opened later are skipped."""
        target = day if day is not None else self._calendar.today()
        summary = BatchSummary(operation="daily_snapshots")
        start_time = time.monotonic()

        for account in await self._accounts.list_accounts():
            if self._calendar.normalize(account.created_at) > target:
                summary.record(ItemResult.skipped(account.user_id, "account_created_after_date"))
                continue
            try:
                snapshot = await self.create_daily_snapshot(account.user_id, target)
            except SimTradeError as e:
                logger.warning(
                    "snapshot_failed",
                    user_id=account.user_id,
                    date=target.isoformat(),
                    error=str(e),
                )
                summary.record(ItemResult.failed(account.user_id, e))
                continue
            summary.record(
                ItemResult.ok(
                    account.user_id,
                    total_assets=str(snapshot.total_assets),
                    price_gaps=snapshot.price_gaps,
                )
            )

        summary.duration_seconds = round(time.monotonic() - start_time, 3)
        logger.info(
            "daily_snapshots_complete",
            date=target.isoformat(),
            succeeded=summary.succeeded,
            failed=summary.failed,
            skipped=summary.skipped,
        )
        return summary

    async def get_snapshot(self, user_id: str, day: date) -> PortfolioSnapshot | None:
        return await self._snapshots.get_snapshot(user_id, day)

    async def get_snapshots_in_range(
        self, user_id: str, start: date, end: date
    ) -> list[PortfolioSnapshot]:
        if start > end:
            raise ValidationError(f"Range start {start} is after end {end}")
        return await self._snapshots.list_snapshots(user_id, start, end)

    async def refresh_account_metrics(self, user_id: str) -> Account:
        """Recompute cash, total assets and total return as of today and store them."""
        snapshot = await self._reconstructor.value_on(user_id, self._calendar.today())
        await self._accounts.update_metrics(
            user_id, snapshot.cash, snapshot.total_assets, snapshot.total_return
        )
        account = await self._accounts.get_account(user_id)
        if account is None:
            raise NotFoundError(f"Account not found: {user_id}")
        return account

    async def refresh_all_account_metrics(self) -> BatchSummary:
        summary = BatchSummary(operation="refresh_account_metrics")
        for account in await self._accounts.list_accounts():
            try:
                refreshed = await self.refresh_account_metrics(account.user_id)
            except SimTradeError as e:
                summary.record(ItemResult.failed(account.user_id, e))
                continue
            summary.record(ItemResult.ok(account.user_id, total_assets=str(refreshed.total_assets)))
        logger.info(
            "account_metrics_refreshed",
            succeeded=summary.succeeded,
            failed=summary.failed,
        )
        return summary

    async def reset_period_start(self, period: RankingPeriod) -> BatchSummary:
        """Store every account's current total assets as the new weekly/monthly baseline."""
        if period == RankingPeriod.ALL_TIME:
            raise ValidationError("ALL_TIME has no period baseline")

        summary = BatchSummary(operation=f"reset_{period.value.lower()}_start")
        for account in await self._accounts.list_accounts():
            try:
                await self._accounts.set_period_start_assets(
                    account.user_id, period, account.total_assets
                )
            except SimTradeError as e:
                summary.record(ItemResult.failed(account.user_id, e))
                continue
            summary.record(ItemResult.ok(account.user_id, start_assets=str(account.total_assets)))

        logger.info(
            "period_start_reset",
            period=period.value,
            accounts=summary.succeeded,
            failed=summary.failed,
        )
        return summary
