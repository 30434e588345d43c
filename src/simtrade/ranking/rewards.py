"""Monthly reward distribution with a double guard against double payment.

Reward table (per MONTHLY ranking row with rank <= 100):
- ROOKIE rank 1-10:    10,000,000
- ROOKIE rank 11-100:   5,000,000
- HALL_OF_FAME 1-100:   0 (not defined yet, skipped)

Rows whose ``as_of`` falls outside the labelled month are skipped as
``ranking_not_for_period``: the stored rankings must be the ones for the
month being paid.

Guards, checked in order for every eligible row:
1. the row's ``reward_given`` flag (check-and-set claim before paying)
2. an existing CapitalHistory reward entry for the same user and period label

The flag alone is not enough: rankings are fully replaced on every run,
which resets the flags. The CapitalHistory entry is append-only and survives.
"""

import time
from dataclasses import dataclass
from decimal import Decimal

from simtrade.config import RewardSettings
from simtrade.exceptions import ConflictError, SimTradeError
from simtrade.logging import get_logger
from simtrade.models import (
    BatchSummary,
    CapitalChangeReason,
    CapitalHistoryEntry,
    ItemResult,
    ItemStatus,
    League,
    RankingPeriod,
    RankingRow,
    RewardType,
)
from simtrade.persistence.interfaces import AccountRepository, RankingRepository
from simtrade.trading_calendar import TradingCalendar, month_label, parse_month_label

logger = get_logger(__name__)


@dataclass(frozen=True)
class RewardInfo:
    reward_type: RewardType
    amount: Decimal


class RewardDistributor:
    """Pays monthly rewards from the stored MONTHLY rankings.

    Args:
        accounts: Account repository (capital bonus and reward audit trail).
        rankings: Ranking storage holding the reward claim flags.
        calendar: Source of payment timestamps.
        settings: Reward amounts and rank brackets.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        rankings: RankingRepository,
        calendar: TradingCalendar,
        settings: RewardSettings | None = None,
    ) -> None:
        self._accounts = accounts
        self._rankings = rankings
        self._calendar = calendar
        self._settings = settings or RewardSettings()

    def get_reward_info(self, rank: int, league: League) -> RewardInfo | None:
        """Reward bracket for a rank in a league, or None if the rank is not eligible."""
        if rank < 1 or rank > self._settings.eligible_max_rank:
            return None
        if league == League.HALL_OF_FAME:
            return RewardInfo(RewardType.HALL_TOP100, self._settings.hall_top100_amount)
        if rank <= self._settings.top_bracket_max_rank:
            return RewardInfo(RewardType.ROOKIE_TOP10, self._settings.rookie_top10_amount)
        return RewardInfo(RewardType.ROOKIE_TOP100, self._settings.rookie_top100_amount)

    async def distribute_monthly_rewards(self, period_label: str) -> BatchSummary:
        """Pay every eligible MONTHLY row once for ``period_label`` (``YYYY-MM``).

        Safe to re-run: rows already paid are reported as skipped.
        """
        parse_month_label(period_label)
        summary = BatchSummary(operation="monthly_rewards")
        start_time = time.monotonic()

        rows = await self._rankings.list_period(
            RankingPeriod.MONTHLY, max_rank=self._settings.eligible_max_rank
        )
        for row in rows:
            summary.record(await self._reward_row(row, period_label))

        summary.duration_seconds = round(time.monotonic() - start_time, 3)
        paid = sum(
            (Decimal(r.data["amount"]) for r in summary.results if r.status == ItemStatus.SUCCEEDED),
            Decimal("0"),
        )
        logger.info(
            "monthly_rewards_distributed",
            period_label=period_label,
            paid=summary.succeeded,
            skipped=summary.skipped,
            failed=summary.failed,
            total_amount=str(paid),
        )
        return summary

    async def _reward_row(self, row: RankingRow, period_label: str) -> ItemResult:
        if month_label(row.as_of) != period_label:
            return ItemResult.skipped(
                row.user_id, "ranking_not_for_period", as_of=row.as_of.isoformat()
            )
        info = self.get_reward_info(row.rank, row.league)
        if info is None or info.amount <= 0:
            return ItemResult.skipped(row.user_id, "no_reward_defined", league=row.league.value, rank=row.rank)
        if row.reward_given:
            return ItemResult.skipped(row.user_id, "already_rewarded", rank=row.rank)
        if await self._accounts.has_reward_entry(row.user_id, period_label):
            return ItemResult.skipped(row.user_id, "already_rewarded", rank=row.rank)

        if not await self._rankings.claim_reward(row.user_id, RankingPeriod.MONTHLY, info.amount):
            return ItemResult.skipped(row.user_id, "already_claimed", rank=row.rank)

        entry = CapitalHistoryEntry(
            user_id=row.user_id,
            amount=info.amount,
            reason=(
                CapitalChangeReason.HALL_REWARD
                if row.league == League.HALL_OF_FAME
                else CapitalChangeReason.ROOKIE_REWARD
            ),
            new_total=Decimal("0"),  # set by the repository
            created_at=self._calendar.now(),
            reward_type=info.reward_type,
            reward_rank=row.rank,
            period_label=period_label,
            league=row.league,
            description=f"{period_label} {row.league.value} #{row.rank} monthly reward",
        )
        try:
            account = await self._accounts.apply_capital_bonus(entry)
        except ConflictError:
            return ItemResult.skipped(row.user_id, "already_rewarded", rank=row.rank)
        except SimTradeError as e:
            await self._rankings.release_reward(row.user_id, RankingPeriod.MONTHLY)
            logger.warning(
                "reward_payment_failed",
                user_id=row.user_id,
                period_label=period_label,
                error=str(e),
            )
            return ItemResult.failed(row.user_id, e)

        logger.info(
            "reward_paid",
            user_id=row.user_id,
            league=row.league.value,
            rank=row.rank,
            amount=str(info.amount),
            new_initial_capital=str(account.initial_capital),
        )
        return ItemResult.ok(
            row.user_id,
            reward_type=info.reward_type.value,
            rank=row.rank,
            amount=str(info.amount),
        )

    async def has_rewards_been_distributed(self, period_label: str) -> bool:
        parse_month_label(period_label)
        return bool(await self._accounts.list_reward_entries(period_label))

    async def get_reward_stats(self, period_label: str | None = None) -> dict:
        """Totals of paid rewards, overall and per reward type."""
        entries = await self._accounts.list_reward_entries(period_label)
        by_type: dict[str, dict] = {}
        for entry in entries:
            key = entry.reward_type.value if entry.reward_type else "UNKNOWN"
            bucket = by_type.setdefault(key, {"count": 0, "amount": Decimal("0")})
            bucket["count"] += 1
            bucket["amount"] += entry.amount
        return {
            "period_label": period_label,
            "count": len(entries),
            "total_amount": str(sum((e.amount for e in entries), Decimal("0"))),
            "by_type": {k: {"count": v["count"], "amount": str(v["amount"])} for k, v in by_type.items()},
            "periods": sorted({e.period_label for e in entries if e.period_label}),
        }
