"""Trigger surface: the entry points an external scheduler or operator calls.

Each trigger runs one batch job and returns its structured summary as a
plain dict (``attempted``, ``succeeded``, ``failed``, ``skipped``,
``errors``, ``results``). Scheduling itself lives outside the engine.

Midnight job order (market timezone):
1. league reclassification
2. on the 1st: monthly rewards for the previous month
3. daily snapshots for the previous day
4. on Monday: weekly baseline reset
5. on the 1st: monthly baseline reset

Rewards run before the monthly reset so the finished month is still ranked
against its own baseline.
"""

import asyncio
import time
from typing import Any

from simtrade.backfill.orchestrator import BackfillOrchestrator
from simtrade.data.collector import DailyPriceCollector
from simtrade.data.fetcher import HistoricalBackfillFetcher
from simtrade.logging import get_logger
from simtrade.models import RankingPeriod
from simtrade.portfolio.snapshots import SnapshotService
from simtrade.ranking.engine import RankingEngine
from simtrade.ranking.league import LeagueClassifier
from simtrade.ranking.rewards import RewardDistributor
from simtrade.trading_calendar import TradingCalendar, add_days, previous_month_label

logger = get_logger(__name__)


class TriggerSurface:
    """Runs batch jobs on demand and reports what they did.

    Args:
        collector: Daily quote refresh and market-close candle writer.
        fetcher: Historical price backfill.
        snapshots: Snapshot creation, metric refresh and period baselines.
        ranking_engine: Ranking computation.
        league_classifier: League tier assignment.
        reward_distributor: Monthly reward payment.
        orchestrator: Missing-date repair.
        calendar: Market calendar deciding "today".
    """

    def __init__(
        self,
        collector: DailyPriceCollector,
        fetcher: HistoricalBackfillFetcher,
        snapshots: SnapshotService,
        ranking_engine: RankingEngine,
        league_classifier: LeagueClassifier,
        reward_distributor: RewardDistributor,
        orchestrator: BackfillOrchestrator,
        calendar: TradingCalendar,
    ) -> None:
        self._collector = collector
        self._fetcher = fetcher
        self._snapshots = snapshots
        self._ranking = ranking_engine
        self._leagues = league_classifier
        self._rewards = reward_distributor
        self._orchestrator = orchestrator
        self._calendar = calendar

    # ──────────────────────────────────────────────
    # Price data
    # ──────────────────────────────────────────────

    async def run_daily_collection(self, cancel_event: asyncio.Event | None = None) -> dict[str, Any]:
        summary = await self._collector.run_daily_collection(cancel_event)
        return summary.to_dict()

    async def run_daily_candle_close(self) -> dict[str, Any]:
        """Write today's candles, then refresh every account's live metrics."""
        candles = await self._collector.run_daily_candle_close()
        metrics = await self._snapshots.refresh_all_account_metrics()
        result = candles.to_dict()
        result["account_metrics"] = metrics.to_dict()
        return result

    async def backfill_prices(
        self,
        day_count: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        results = await self._fetcher.backfill_all(day_count, cancel_event)
        return self._fetcher.summarize(results).to_dict()

    # ──────────────────────────────────────────────
    # Competition
    # ──────────────────────────────────────────────

    async def compute_rankings(self, period: RankingPeriod | None = None) -> dict[str, Any]:
        """Recompute one period, or every period when ``period`` is None."""
        if period is not None:
            summary = await self._ranking.compute_rankings(period)
            return summary.to_dict()
        summaries = await self._ranking.compute_all()
        return {s.operation: s.to_dict() for s in summaries}

    async def reclassify_leagues(self) -> dict[str, Any]:
        summary = await self._leagues.reclassify_all()
        return summary.to_dict()

    async def distribute_monthly_rewards(self, period_label: str | None = None) -> dict[str, Any]:
        """Pay rewards for ``period_label`` (default: the previous month)."""
        label = period_label or previous_month_label(self._calendar.today())
        summary = await self._rewards.distribute_monthly_rewards(label)
        result = summary.to_dict()
        result["period_label"] = label
        return result

    # ──────────────────────────────────────────────
    # Derived-data repair
    # ──────────────────────────────────────────────

    async def backfill_missing(
        self,
        lookback_days: int | None = None,
        force: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, Any]:
        summary = await self._orchestrator.backfill_missing(lookback_days, force, cancel_event)
        result = summary.to_batch_summary().to_dict()
        result["total_cost"] = str(summary.total_cost)
        result["cancelled"] = summary.cancelled
        return result

    # ──────────────────────────────────────────────
    # Scheduled
    # ──────────────────────────────────────────────

    async def run_daily_midnight_tasks(self) -> dict[str, Any]:
        """Run the midnight job sequence. Each step's summary is keyed by step name."""
        start_time = time.monotonic()
        today = self._calendar.today()
        steps: dict[str, Any] = {}

        steps["leagues"] = await self.reclassify_leagues()

        if today.day == 1:
            steps["rewards"] = await self.distribute_monthly_rewards(previous_month_label(today))

        snapshot_day = add_days(today, -1)
        steps["snapshots"] = (await self._snapshots.create_all_daily_snapshots(snapshot_day)).to_dict()

        if today.weekday() == 0:
            steps["weekly_reset"] = (
                await self._snapshots.reset_period_start(RankingPeriod.WEEKLY)
            ).to_dict()

        if today.day == 1:
            steps["monthly_reset"] = (
                await self._snapshots.reset_period_start(RankingPeriod.MONTHLY)
            ).to_dict()

        duration = round(time.monotonic() - start_time, 3)
        logger.info(
            "midnight_tasks_complete",
            date=today.isoformat(),
            steps=list(steps),
            duration_seconds=duration,
        )
        return {"date": today.isoformat(), "steps": steps, "duration_seconds": duration}
