"""Gap detection and per-date regeneration of derived data."""

from simtrade.backfill.orchestrator import (
    BackfillOrchestrator,
    BackfillSummary,
    DateBackfillResult,
)
from simtrade.backfill.stages import (
    BackfillStage,
    MarketContextStage,
    PersonalizedAnalysisStage,
    RankingStage,
    SnapshotStage,
    StageName,
    StageResult,
)

__all__ = [
    "BackfillOrchestrator",
    "BackfillStage",
    "BackfillSummary",
    "DateBackfillResult",
    "MarketContextStage",
    "PersonalizedAnalysisStage",
    "RankingStage",
    "SnapshotStage",
    "StageName",
    "StageResult",
]
