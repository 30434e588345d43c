"""Backfill orchestrator: detects missing trading days and repairs them in stage order.

A date counts as missing when it has no MarketContext (the first stage's
artifact). For each date the stages run in fixed order; a stage whose
dependency failed on that date is skipped, and a failure on one date never
stops the run. Dates are processed oldest first so snapshot baselines
exist before later dates need them.

No internal lock: with several instances the caller must hold an external
lock around a run. Cancellation is cooperative at date boundaries.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from simtrade.backfill.stages import BackfillStage, StageName, StageResult
from simtrade.config import BackfillSettings
from simtrade.exceptions import SimTradeError, ValidationError
from simtrade.logging import get_logger
from simtrade.models import BatchSummary, ItemResult, ItemStatus
from simtrade.persistence.interfaces import AnalysisRepository
from simtrade.trading_calendar import TradingCalendar, add_days, iter_days, trading_days

logger = get_logger(__name__)

STAGE_ORDER = (
    StageName.MARKET_CONTEXT,
    StageName.SNAPSHOTS,
    StageName.PERSONALIZED_ANALYSIS,
    StageName.RANKINGS,
)

# Rankings and analysis read the snapshots written for the same date.
STAGE_DEPENDENCIES: dict[StageName, tuple[StageName, ...]] = {
    StageName.MARKET_CONTEXT: (),
    StageName.SNAPSHOTS: (),
    StageName.PERSONALIZED_ANALYSIS: (StageName.SNAPSHOTS,),
    StageName.RANKINGS: (StageName.SNAPSHOTS,),
}


@dataclass
class DateBackfillResult:
    """Outcome of every stage for one date."""

    date: date
    stages: list[StageResult] = field(default_factory=list)
    cost: Decimal = Decimal("0")
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not any(s.failed for s in self.stages)

    def stage(self, name: StageName) -> StageResult | None:
        return next((s for s in self.stages if s.stage == name), None)


@dataclass
class BackfillSummary:
    """Totals across a multi-date run."""

    total_days: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[DateBackfillResult] = field(default_factory=list)
    total_cost: Decimal = Decimal("0")
    duration_seconds: float = 0.0
    cancelled: bool = False
    not_processed: list[date] = field(default_factory=list)

    def to_batch_summary(self) -> BatchSummary:
        """Per-date view in the common trigger summary shape."""
        batch = BatchSummary(operation="backfill_missing", duration_seconds=self.duration_seconds)
        for result in self.results:
            key = result.date.isoformat()
            if result.success:
                batch.record(ItemResult.ok(key, cost=str(result.cost)))
            else:
                failed = [s for s in result.stages if s.failed]
                batch.record(
                    ItemResult(
                        key=key,
                        status=ItemStatus.FAILED,
                        message="; ".join(f"{s.stage.value}: {s.message}" for s in failed),
                        error_type="StageFailure",
                    )
                )
        for day in self.not_processed:
            batch.record(ItemResult.skipped(day.isoformat(), "cancelled"))
        return batch


class BackfillOrchestrator:
    """Repairs missing days by re-running the per-date stage pipeline.

    Args:
        stages: One stage per StageName; executed in STAGE_ORDER.
        analysis: Market context store used to detect missing dates.
        calendar: Market calendar deciding "today" and weekends.
        settings: Lookback defaults and the scan-window cap.
    """

    def __init__(
        self,
        stages: list[BackfillStage],
        analysis: AnalysisRepository,
        calendar: TradingCalendar,
        settings: BackfillSettings | None = None,
    ) -> None:
        by_name = {stage.name: stage for stage in stages}
        missing = [name.value for name in STAGE_ORDER if name not in by_name]
        if missing:
            raise ValueError(f"Backfill stages not configured: {', '.join(missing)}")
        self._stages = [by_name[name] for name in STAGE_ORDER]
        self._analysis = analysis
        self._calendar = calendar
        self._settings = settings or BackfillSettings()

    # ──────────────────────────────────────────────
    # Public methods
    # ──────────────────────────────────────────────

    async def scan_missing_dates(self, lookback_days: int | None = None) -> list[date]:
        """Weekdays in ``[today - lookback + 1, today]`` lacking a MarketContext, oldest first."""
        lookback = self._lookback(lookback_days)
        today = self._calendar.today()
        start = add_days(today, -(lookback - 1))
        present = await self._analysis.market_context_dates(start, today)
        missing = [d for d in trading_days(start, today) if d not in present]
        logger.info(
            "missing_dates_scanned",
            lookback_days=lookback,
            missing=[d.isoformat() for d in missing],
        )
        return missing

    async def backfill_date(self, day: date, force: bool = False) -> DateBackfillResult:
        """Run every stage for ``day``. Stage failures are captured, never raised."""
        if day > self._calendar.today():
            raise ValidationError(f"Cannot backfill a future date: {day.isoformat()}")

        start_time = time.monotonic()
        result = DateBackfillResult(date=day)
        outcome: dict[StageName, StageResult] = {}

        for stage in self._stages:
            failed_deps = [
                dep.value for dep in STAGE_DEPENDENCIES[stage.name] if outcome[dep].failed
            ]
            if failed_deps:
                stage_result = StageResult(
                    stage.name,
                    ItemStatus.SKIPPED,
                    "dependency_failed",
                    details={"dependencies": failed_deps},
                )
            else:
                stage_result = await self._run_stage(stage, day, force)

            outcome[stage.name] = stage_result
            result.stages.append(stage_result)
            result.cost += stage_result.cost

        result.duration_seconds = round(time.monotonic() - start_time, 3)
        logger.info(
            "date_backfilled",
            date=day.isoformat(),
            success=result.success,
            stages={s.stage.value: s.status.value for s in result.stages},
            cost=str(result.cost),
        )
        return result

    async def backfill_missing(
        self,
        lookback_days: int | None = None,
        force: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> BackfillSummary:
        """Scan the lookback window and backfill every missing date."""
        missing = await self.scan_missing_dates(lookback_days)
        if not missing:
            logger.info("backfill_up_to_date")
        return await self._run_dates(missing, force, cancel_event)

    async def backfill_range(
        self,
        start: date,
        end: date,
        force: bool = False,
        skip_weekends: bool = True,
        cancel_event: asyncio.Event | None = None,
    ) -> BackfillSummary:
        """Backfill every date in ``[start, end]`` regardless of existing output."""
        if start > end:
            raise ValidationError(f"Range start {start} is after end {end}")
        if end > self._calendar.today():
            raise ValidationError(f"Cannot backfill a future date: {end.isoformat()}")
        span = (end - start).days + 1
        if span > self._settings.max_lookback_days:
            raise ValidationError(
                f"Range of {span} days exceeds the {self._settings.max_lookback_days}-day limit"
            )

        days = trading_days(start, end) if skip_weekends else list(iter_days(start, end))
        return await self._run_dates(days, force, cancel_event)

    # ──────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────

    def _lookback(self, lookback_days: int | None) -> int:
        lookback = lookback_days if lookback_days is not None else self._settings.lookback_days
        if lookback < 1:
            raise ValidationError(f"lookback_days must be at least 1, got {lookback}")
        if lookback > self._settings.max_lookback_days:
            raise ValidationError(
                f"lookback_days {lookback} exceeds the {self._settings.max_lookback_days}-day limit"
            )
        return lookback

    async def _run_stage(self, stage: BackfillStage, day: date, force: bool) -> StageResult:
        try:
            return await stage.run(day, force)
        except SimTradeError as e:
            logger.warning(
                "backfill_stage_failed",
                date=day.isoformat(),
                stage=stage.name.value,
                error=str(e),
            )
            return StageResult(
                stage.name,
                ItemStatus.FAILED,
                f"{type(e).__name__}: {e}",
            )

    async def _run_dates(
        self,
        days: list[date],
        force: bool,
        cancel_event: asyncio.Event | None,
    ) -> BackfillSummary:
        start_time = time.monotonic()
        summary = BackfillSummary(total_days=len(days))

        for i, day in enumerate(days):
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                summary.not_processed = days[i:]
                summary.skipped = len(summary.not_processed)
                logger.warning(
                    "backfill_cancelled",
                    processed=i,
                    remaining=summary.skipped,
                )
                break

            result = await self.backfill_date(day, force=force)
            summary.results.append(result)
            summary.total_cost += result.cost
            if result.success:
                summary.successful += 1
            else:
                summary.failed += 1

        summary.duration_seconds = round(time.monotonic() - start_time, 3)
        logger.info(
            "backfill_complete",
            total_days=summary.total_days,
            successful=summary.successful,
            failed=summary.failed,
            skipped=summary.skipped,
            total_cost=str(summary.total_cost),
            duration_seconds=summary.duration_seconds,
        )
        return summary
