"""Per-date backfill stages.

Stages run in a fixed order for each date:

    MARKET_CONTEXT -> SNAPSHOTS -> PERSONALIZED_ANALYSIS -> RANKINGS

Every stage is a deterministic function of stored data (candles, ledger,
snapshots), so regenerating a date yields the same artifacts. Stage
artifacts carry a ``cost`` field that stays 0 for these summaries.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from simtrade.data.store import PriceHistoryStore
from simtrade.exceptions import SimTradeError
from simtrade.logging import get_logger
from simtrade.models import (
    BatchSummary,
    ItemResult,
    ItemStatus,
    MarketContext,
    PortfolioAnalysis,
    RankingPeriod,
)
from simtrade.persistence.interfaces import (
    AccountRepository,
    AnalysisRepository,
    SnapshotRepository,
)
from simtrade.portfolio.calculations import calculate_period_return, quantize_money
from simtrade.portfolio.reconstructor import PortfolioReconstructor
from simtrade.portfolio.snapshots import SnapshotService
from simtrade.ranking.engine import RankingEngine
from simtrade.trading_calendar import TradingCalendar, add_days

logger = get_logger(__name__)


class StageName(str, Enum):
    MARKET_CONTEXT = "market_context"
    SNAPSHOTS = "snapshots"
    PERSONALIZED_ANALYSIS = "personalized_analysis"
    RANKINGS = "rankings"


@dataclass
class StageResult:
    """Outcome of one stage for one date."""

    stage: StageName
    status: ItemStatus
    message: str = ""
    cost: Decimal = Decimal("0")
    details: dict = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.status == ItemStatus.FAILED


def _from_batch(stage: StageName, summary: BatchSummary) -> StageResult:
    """A batch stage fails only when it attempted work and nothing succeeded."""
    details = {
        "attempted": summary.attempted,
        "succeeded": summary.succeeded,
        "failed": summary.failed,
        "skipped": summary.skipped,
        "errors": summary.errors,
    }
    if summary.failed and not summary.succeeded:
        return StageResult(stage, ItemStatus.FAILED, "all_items_failed", details=details)
    return StageResult(stage, ItemStatus.SUCCEEDED, details=details)


class BackfillStage(ABC):
    """One step of the per-date pipeline."""

    name: StageName

    @abstractmethod
    async def run(self, day: date, force: bool = False) -> StageResult:
        """Produce this stage's output for ``day``. Raises SimTradeError on failure."""
        ...


class MarketContextStage(BackfillStage):
    """Summarizes the day's candles: breadth, average change, top movers.

    A date with no candles still gets a context (all counts zero) so the
    date is not reported as missing forever.
    """

    name = StageName.MARKET_CONTEXT

    def __init__(self, price_store: PriceHistoryStore, analysis: AnalysisRepository) -> None:
        self._prices = price_store
        self._analysis = analysis

    async def run(self, day: date, force: bool = False) -> StageResult:
        existing = await self._analysis.get_market_context(day)
        if existing is not None and not force:
            return StageResult(self.name, ItemStatus.SKIPPED, "already_present")
        if existing is not None:
            await self._analysis.delete_market_context(day)
            logger.info("market_context_regenerating", date=day.isoformat())

        context = await self.build(day)
        await self._analysis.save_market_context(context)
        return StageResult(
            self.name,
            ItemStatus.SUCCEEDED,
            cost=context.cost,
            details={"instrument_count": context.instrument_count},
        )

    async def build(self, day: date) -> MarketContext:
        candles = await self._prices.list_candles_on(day)
        changes: list[tuple[str, Decimal]] = []
        for candle in candles:
            previous = await self._prices.get_latest_candle(candle.instrument_id, add_days(day, -1))
            if previous is None:
                continue
            change = calculate_period_return(candle.close, previous.close)
            changes.append((candle.instrument_id, change))

        advancers = sum(1 for _, c in changes if c > 0)
        decliners = sum(1 for _, c in changes if c < 0)
        average = (
            quantize_money(sum((c for _, c in changes), Decimal("0")) / len(changes))
            if changes
            else Decimal("0")
        )
        # ties resolve to the lowest instrument_id
        ranked = sorted(changes, key=lambda pair: (-pair[1], pair[0]))
        return MarketContext(
            date=day,
            instrument_count=len(candles),
            advancers=advancers,
            decliners=decliners,
            unchanged=len(changes) - advancers - decliners,
            average_change_pct=average,
            top_gainer=ranked[0][0] if ranked and ranked[0][1] > 0 else None,
            top_loser=ranked[-1][0] if ranked and ranked[-1][1] < 0 else None,
        )


class SnapshotStage(BackfillStage):
    """Writes every account's snapshot for the date."""

    name = StageName.SNAPSHOTS

    def __init__(self, snapshots: SnapshotService) -> None:
        self._snapshots = snapshots

    async def run(self, day: date, force: bool = False) -> StageResult:
        summary = await self._snapshots.create_all_daily_snapshots(day)
        return _from_batch(self.name, summary)


class PersonalizedAnalysisStage(BackfillStage):
    """Per-user day summary: change versus the previous snapshot, holdings, trades."""

    name = StageName.PERSONALIZED_ANALYSIS

    def __init__(
        self,
        accounts: AccountRepository,
        snapshots: SnapshotRepository,
        reconstructor: PortfolioReconstructor,
        analysis: AnalysisRepository,
    ) -> None:
        self._accounts = accounts
        self._snapshots = snapshots
        self._reconstructor = reconstructor
        self._analysis = analysis

    async def run(self, day: date, force: bool = False) -> StageResult:
        if force:
            await self._analysis.delete_portfolio_analyses(day)

        summary = BatchSummary(operation="personalized_analysis")
        for account in await self._accounts.list_accounts():
            snapshot = await self._snapshots.get_snapshot(account.user_id, day)
            if snapshot is None:
                summary.record(ItemResult.skipped(account.user_id, "no_snapshot"))
                continue
            try:
                analysis = await self.build(account.user_id, day, snapshot.total_assets)
            except SimTradeError as e:
                summary.record(ItemResult.failed(account.user_id, e))
                continue
            await self._analysis.save_portfolio_analysis(analysis)
            summary.record(ItemResult.ok(account.user_id))

        return _from_batch(self.name, summary)

    async def build(self, user_id: str, day: date, total_assets: Decimal) -> PortfolioAnalysis:
        previous = await self._snapshots.get_latest_on_or_before(user_id, add_days(day, -1))
        baseline = previous.total_assets if previous else None
        day_change = quantize_money(total_assets - baseline) if baseline is not None else Decimal("0")
        day_change_pct = calculate_period_return(total_assets, baseline)
        holdings = await self._reconstructor.holdings_on(user_id, day)
        trades = await self._reconstructor.trades_on(user_id, day)
        summary = (
            f"{day.isoformat()}: total assets {total_assets} "
            f"({day_change_pct:+}% / {day_change:+}), "
            f"{len(holdings)} holdings, {len(trades)} trades"
        )
        return PortfolioAnalysis(
            user_id=user_id,
            date=day,
            total_assets=total_assets,
            day_change=day_change,
            day_change_pct=day_change_pct,
            holdings_count=len(holdings),
            trades_count=len(trades),
            summary=summary,
        )


class RankingStage(BackfillStage):
    """Recomputes every ranking period, but only for the latest trading day.

    Rankings hold one row per (user, period); rewriting them for an older
    date would replace the current standings with stale ones.
    """

    name = StageName.RANKINGS

    def __init__(self, engine: RankingEngine, calendar: TradingCalendar) -> None:
        self._engine = engine
        self._calendar = calendar

    async def run(self, day: date, force: bool = False) -> StageResult:
        latest = self._calendar.latest_trading_day()
        if day != latest:
            return StageResult(
                self.name,
                ItemStatus.SKIPPED,
                "not_latest_trading_day",
                details={"latest_trading_day": latest.isoformat()},
            )

        details: dict = {}
        for period in RankingPeriod:
            summary = await self._engine.compute_rankings(period, as_of=day)
            details[period.value] = {"ranked": summary.succeeded, "failed": summary.failed}
        return StageResult(self.name, ItemStatus.SUCCEEDED, details=details)

