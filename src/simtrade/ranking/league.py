"""League classification by total-assets threshold.

An account with total assets at or above the Hall of Fame threshold
(100,000,000 by default, inclusive) belongs to HALL_OF_FAME, everything
else to ROOKIE. The league is written only when it changes, together with
``league_updated_at``.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from simtrade.config import LeagueSettings
from simtrade.exceptions import NotFoundError, SimTradeError
from simtrade.logging import get_logger
from simtrade.models import Account, BatchSummary, ItemResult, League
from simtrade.persistence.interfaces import AccountRepository
from simtrade.trading_calendar import TradingCalendar

logger = get_logger(__name__)

_ORDER = {League.ROOKIE: 0, League.HALL_OF_FAME: 1}


@dataclass
class LeagueSummary(BatchSummary):
    """Batch summary plus promotion counts and resulting league sizes."""

    promoted: int = 0
    demoted: int = 0
    unchanged: int = 0
    league_sizes: dict[str, int] = field(default_factory=dict)


class LeagueClassifier:
    """Assigns accounts to leagues.

    Args:
        accounts: Account repository.
        calendar: Source of ``league_updated_at`` timestamps.
        settings: League threshold.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        calendar: TradingCalendar,
        settings: LeagueSettings | None = None,
    ) -> None:
        self._accounts = accounts
        self._calendar = calendar
        self._settings = settings or LeagueSettings()

    def league_for(self, total_assets: Decimal) -> League:
        if total_assets >= self._settings.hall_of_fame_threshold:
            return League.HALL_OF_FAME
        return League.ROOKIE

    async def classify(self, user_id: str) -> League:
        """Classify one account, persisting the league if it changed."""
        account = await self._accounts.get_account(user_id)
        if account is None:
            raise NotFoundError(f"Account not found: {user_id}")
        _, new_league = await self._apply(account)
        return new_league

    async def reclassify_all(self) -> LeagueSummary:
        """Classify every account. Per-account failures are counted, never raised."""
        summary = LeagueSummary(operation="league_reclassification")
        sizes = {league.value: 0 for league in League}

        for account in await self._accounts.list_accounts():
            try:
                previous, new = await self._apply(account)
            except SimTradeError as e:
                logger.warning("league_update_failed", user_id=account.user_id, error=str(e))
                summary.record(ItemResult.failed(account.user_id, e))
                sizes[account.league.value] += 1
                continue

            sizes[new.value] += 1
            if previous == new:
                summary.unchanged += 1
            elif _ORDER[new] > _ORDER[previous]:
                summary.promoted += 1
            else:
                summary.demoted += 1
            summary.record(
                ItemResult.ok(account.user_id, previous_league=previous.value, new_league=new.value)
            )

        summary.league_sizes = sizes
        logger.info(
            "leagues_reclassified",
            promoted=summary.promoted,
            demoted=summary.demoted,
            unchanged=summary.unchanged,
            errors=summary.failed,
            **{f"size_{k.lower()}": v for k, v in sizes.items()},
        )
        return summary

    async def get_league_stats(self) -> dict:
        """Member count and average total assets per league."""
        accounts = await self._accounts.list_accounts()
        stats: dict = {"threshold": str(self._settings.hall_of_fame_threshold)}
        for league in League:
            members = [a for a in accounts if a.league == league]
            total = sum((a.total_assets for a in members), Decimal("0"))
            average = (total / len(members)).quantize(Decimal("0.01")) if members else Decimal("0")
            stats[league.value] = {"count": len(members), "average_total_assets": str(average)}
        return stats

    async def _apply(self, account: Account) -> tuple[League, League]:
        previous = account.league
        new = self.league_for(account.total_assets)
        if new != previous:
            await self._accounts.update_league(account.user_id, new, self._calendar.now())
            logger.info(
                "league_changed",
                user_id=account.user_id,
                previous_league=previous.value,
                new_league=new.value,
                total_assets=str(account.total_assets),
            )
        return previous, new
