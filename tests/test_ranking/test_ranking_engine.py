"""Tests for RankingEngine: period returns, per-league order and top-N storage."""

from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from simtrade.config import RankingSettings
from simtrade.models import Account, ItemStatus, League, PortfolioSnapshot, RankingPeriod
from simtrade.persistence.memory import (
    InMemoryAccountRepository,
    InMemoryRankingRepository,
    InMemorySnapshotRepository,
)
from simtrade.ranking.engine import RankingEngine
from simtrade.trading_calendar import TradingCalendar

KST = ZoneInfo("Asia/Seoul")
TODAY = date(2025, 11, 12)


def _make_account(
    user_id: str,
    total_return: str = "0",
    total_assets: str = "10000000",
    league: League = League.ROOKIE,
    weekly_start: str | None = None,
    monthly_start: str | None = None,
) -> Account:
    return Account(
        user_id=user_id,
        username=user_id,
        league=league,
        initial_capital=Decimal("10000000"),
        cash=Decimal(total_assets),
        total_assets=Decimal(total_assets),
        total_return=Decimal(total_return),
        created_at=datetime(2025, 10, 1, 9, 0, tzinfo=KST),
        weekly_start_assets=Decimal(weekly_start) if weekly_start else None,
        monthly_start_assets=Decimal(monthly_start) if monthly_start else None,
    )


def _snapshot(day: date, total_assets: str, total_return: str = "0") -> PortfolioSnapshot:
    assets = Decimal(total_assets)
    return PortfolioSnapshot(day, assets, Decimal("0"), assets, Decimal(total_return))


@pytest.fixture
def engine(
    accounts: InMemoryAccountRepository,
    snapshot_repo: InMemorySnapshotRepository,
    rankings: InMemoryRankingRepository,
    calendar: TradingCalendar,
) -> RankingEngine:
    return RankingEngine(accounts, snapshot_repo, rankings, calendar)


class TestComputeRankings:
    @pytest.mark.asyncio
    async def test_orders_by_return_descending(
        self, engine: RankingEngine, accounts: InMemoryAccountRepository
    ) -> None:
        for user_id, ret in (("u1", "20"), ("u2", "15"), ("u3", "-5"), ("u4", "0")):
            await accounts.save_account(_make_account(user_id, total_return=ret))

        summary = await engine.compute_rankings(RankingPeriod.ALL_TIME)

        rows = await engine.get_rankings(RankingPeriod.ALL_TIME)
        assert {r.user_id: r.rank for r in rows} == {"u1": 1, "u2": 2, "u4": 3, "u3": 4}
        assert summary.succeeded == 4
        assert all(r.as_of == TODAY for r in rows)

    @pytest.mark.asyncio
    async def test_only_top_n_rows_are_stored(
        self, engine: RankingEngine, accounts: InMemoryAccountRepository
    ) -> None:
        for i in range(150):
            await accounts.save_account(_make_account(f"user{i:03d}", total_return=str(i)))

        summary = await engine.compute_rankings(RankingPeriod.ALL_TIME)

        rows = await engine.get_rankings(RankingPeriod.ALL_TIME, limit=1000)
        assert len(rows) == 100
        assert [r.rank for r in rows] == list(range(1, 101))
        assert rows[0].user_id == "user149"
        assert summary.skipped == 50
        assert set(summary.keys(ItemStatus.SKIPPED)) == {f"user{i:03d}" for i in range(50)}

    @pytest.mark.asyncio
    async def test_ties_keep_user_id_order(
        self, engine: RankingEngine, accounts: InMemoryAccountRepository
    ) -> None:
        for user_id in ("carol", "alice", "bob"):
            await accounts.save_account(_make_account(user_id, total_return="5"))

        await engine.compute_rankings(RankingPeriod.ALL_TIME)

        rows = await engine.get_rankings(RankingPeriod.ALL_TIME)
        assert [r.user_id for r in rows] == ["alice", "bob", "carol"]

    @pytest.mark.asyncio
    async def test_leagues_are_ranked_separately(
        self, engine: RankingEngine, accounts: InMemoryAccountRepository
    ) -> None:
        await accounts.save_account(_make_account("rookie", total_return="50"))
        await accounts.save_account(_make_account("veteran", total_return="1", league=League.HALL_OF_FAME))

        await engine.compute_rankings(RankingPeriod.ALL_TIME)

        rookie = await engine.get_user_rank("rookie", RankingPeriod.ALL_TIME)
        veteran = await engine.get_user_rank("veteran", RankingPeriod.ALL_TIME)
        assert rookie is not None and rookie.rank == 1 and rookie.league == League.ROOKIE
        assert veteran is not None and veteran.rank == 1 and veteran.league == League.HALL_OF_FAME
        assert len(await engine.get_rankings(RankingPeriod.ALL_TIME, league=League.ROOKIE)) == 1

    @pytest.mark.asyncio
    async def test_rerun_with_same_inputs_is_identical(
        self, engine: RankingEngine, accounts: InMemoryAccountRepository
    ) -> None:
        for user_id, ret in (("u1", "3"), ("u2", "7")):
            await accounts.save_account(_make_account(user_id, total_return=ret))

        await engine.compute_rankings(RankingPeriod.ALL_TIME)
        first = await engine.get_rankings(RankingPeriod.ALL_TIME)
        await engine.compute_rankings(RankingPeriod.ALL_TIME)
        second = await engine.get_rankings(RankingPeriod.ALL_TIME)

        assert first == second

    @pytest.mark.asyncio
    async def test_periods_do_not_touch_each_other(
        self, engine: RankingEngine, accounts: InMemoryAccountRepository
    ) -> None:
        await accounts.save_account(_make_account("u1", total_return="3"))

        summaries = await engine.compute_all()

        assert [s.operation for s in summaries] == [
            "rankings_weekly",
            "rankings_monthly",
            "rankings_all_time",
        ]
        for period in RankingPeriod:
            assert len(await engine.get_rankings(period)) == 1

    @pytest.mark.asyncio
    async def test_top_n_is_configurable(
        self,
        accounts: InMemoryAccountRepository,
        snapshot_repo: InMemorySnapshotRepository,
        rankings: InMemoryRankingRepository,
        calendar: TradingCalendar,
    ) -> None:
        engine = RankingEngine(accounts, snapshot_repo, rankings, calendar, RankingSettings(top_n=2))
        for i in range(5):
            await accounts.save_account(_make_account(f"u{i}", total_return=str(i)))

        await engine.compute_rankings(RankingPeriod.ALL_TIME)

        assert len(await engine.get_rankings(RankingPeriod.ALL_TIME)) == 2


class TestPeriodReturn:
    @pytest.mark.asyncio
    async def test_weekly_baseline_is_last_snapshot_before_the_week(
        self, engine: RankingEngine, snapshot_repo: InMemorySnapshotRepository
    ) -> None:
        account = _make_account("alice", total_assets="12000000")
        # Friday 11-07 closes the previous week; Monday's move counts
        await snapshot_repo.upsert_snapshot("alice", _snapshot(date(2025, 11, 7), "9000000"))
        await snapshot_repo.upsert_snapshot("alice", _snapshot(date(2025, 11, 10), "10000000"))
        await snapshot_repo.upsert_snapshot("alice", _snapshot(date(2025, 11, 11), "11000000"))

        result = await engine.period_return(account, RankingPeriod.WEEKLY, TODAY)

        assert result == Decimal("33.33")

    @pytest.mark.asyncio
    async def test_stored_start_assets_come_first_in_running_period(
        self, engine: RankingEngine, snapshot_repo: InMemorySnapshotRepository
    ) -> None:
        account = _make_account("alice", total_assets="11000000", weekly_start="10000000")
        await snapshot_repo.upsert_snapshot("alice", _snapshot(date(2025, 11, 7), "9000000"))

        result = await engine.period_return(account, RankingPeriod.WEEKLY, TODAY)

        assert result == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_first_day_of_week_counts_that_days_move(
        self,
        accounts: InMemoryAccountRepository,
        snapshot_repo: InMemorySnapshotRepository,
        rankings: InMemoryRankingRepository,
    ) -> None:
        monday = TradingCalendar(clock=lambda: datetime(2025, 11, 10, 16, 0, tzinfo=KST))
        engine = RankingEngine(accounts, snapshot_repo, rankings, monday)
        account = _make_account("alice", total_assets="11000000", weekly_start="10000000")
        await accounts.save_account(account)
        await snapshot_repo.upsert_snapshot("alice", _snapshot(date(2025, 11, 7), "10000000"))
        await snapshot_repo.upsert_snapshot("alice", _snapshot(date(2025, 11, 10), "11000000"))

        result = await engine.period_return(account, RankingPeriod.WEEKLY, date(2025, 11, 10))
        # without a stored start the Friday close is the baseline
        unreset = _make_account("alice", total_assets="11000000")
        fallback = await engine.period_return(unreset, RankingPeriod.WEEKLY, date(2025, 11, 10))

        assert result == Decimal("10.00")
        assert fallback == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_falls_back_to_stored_period_start(self, engine: RankingEngine) -> None:
        account = _make_account("alice", total_assets="11000000", monthly_start="10000000")

        result = await engine.period_return(account, RankingPeriod.MONTHLY, TODAY)

        assert result == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_no_baseline_is_zero(self, engine: RankingEngine) -> None:
        account = _make_account("alice", total_assets="11000000")

        assert await engine.period_return(account, RankingPeriod.WEEKLY, TODAY) == Decimal("0")

    @pytest.mark.asyncio
    async def test_past_as_of_reads_snapshots_not_live_metrics(
        self, engine: RankingEngine, snapshot_repo: InMemorySnapshotRepository
    ) -> None:
        # stored week start belongs to the running week, not the week of 11-03
        account = _make_account(
            "alice", total_return="99", total_assets="99999999", weekly_start="99999999"
        )
        await snapshot_repo.upsert_snapshot("alice", _snapshot(date(2025, 10, 31), "10000000", "0"))
        await snapshot_repo.upsert_snapshot("alice", _snapshot(date(2025, 11, 7), "10500000", "5.00"))
        friday = date(2025, 11, 7)

        assert await engine.period_return(account, RankingPeriod.ALL_TIME, friday) == Decimal("5.00")
        assert await engine.period_return(account, RankingPeriod.MONTHLY, friday) == Decimal("5.00")
        assert await engine.period_return(account, RankingPeriod.WEEKLY, friday) == Decimal("5.00")

    @pytest.mark.asyncio
    async def test_past_as_of_without_snapshot_has_no_value(self, engine: RankingEngine) -> None:
        account = _make_account("alice", total_return="899.99")

        assert await engine.period_return(account, RankingPeriod.ALL_TIME, date(2025, 11, 3)) is None


class TestHistoricalRankings:
    @pytest.mark.asyncio
    async def test_accounts_without_snapshot_are_left_out(
        self,
        engine: RankingEngine,
        accounts: InMemoryAccountRepository,
        snapshot_repo: InMemorySnapshotRepository,
    ) -> None:
        await accounts.save_account(_make_account("latecomer", total_return="899.99"))
        await accounts.save_account(_make_account("veteran", total_return="1"))
        await snapshot_repo.upsert_snapshot("veteran", _snapshot(date(2025, 11, 3), "10300000", "3.00"))

        summary = await engine.compute_rankings(RankingPeriod.ALL_TIME, as_of=date(2025, 11, 3))

        rows = await engine.get_rankings(RankingPeriod.ALL_TIME)
        assert [(r.user_id, r.period_return) for r in rows] == [("veteran", Decimal("3.00"))]
        assert summary.failed == 0
        assert summary.keys(ItemStatus.SKIPPED) == ["latecomer"]
        assert summary.results[0].message == "no_snapshot_as_of"
