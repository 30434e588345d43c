"""Tests for the per-date backfill stages over the in-memory stack.

Scenario: an account opened Monday 2025-11-10 buys 10 x 005930 at 68,000.
005930 closes 68,000 / 69,000 / 70,000 Mon-Wed; 000660 closes 200,000 on
Tuesday and 190,000 on Wednesday. "Today" is Wednesday.
"""

from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio

from simtrade.backfill.stages import (
    MarketContextStage,
    PersonalizedAnalysisStage,
    RankingStage,
    SnapshotStage,
)
from simtrade.data.models import OHLCV
from simtrade.data.store import PriceHistoryStore
from simtrade.models import (
    Account,
    ItemStatus,
    League,
    MarketContext,
    PortfolioAnalysis,
    RankingPeriod,
    Transaction,
    TransactionType,
)
from simtrade.persistence.memory import (
    InMemoryAccountRepository,
    InMemoryAnalysisRepository,
    InMemoryLedger,
    InMemoryRankingRepository,
    InMemorySnapshotRepository,
)
from simtrade.portfolio.reconstructor import PortfolioReconstructor
from simtrade.portfolio.snapshots import SnapshotService
from simtrade.ranking.engine import RankingEngine
from simtrade.trading_calendar import TradingCalendar

KST = ZoneInfo("Asia/Seoul")
MON, TUE, WED = date(2025, 11, 10), date(2025, 11, 11), date(2025, 11, 12)


def _make_account(user_id: str = "alice") -> Account:
    return Account(
        user_id=user_id,
        username=user_id,
        league=League.ROOKIE,
        initial_capital=Decimal("10000000"),
        cash=Decimal("10000000"),
        total_assets=Decimal("10000000"),
        total_return=Decimal("0"),
        created_at=datetime(2025, 11, 10, 9, 0, tzinfo=KST),
    )


async def _close(store: PriceHistoryStore, instrument_id: str, day: date, price: str) -> None:
    p = Decimal(price)
    await store.upsert_candle(instrument_id, day, OHLCV(p, p, p, p, 100))


@pytest_asyncio.fixture
async def scenario(
    accounts: InMemoryAccountRepository,
    ledger: InMemoryLedger,
    price_store: PriceHistoryStore,
) -> None:
    await accounts.save_account(_make_account())
    await ledger.append_transaction(
        Transaction(
            id="t1",
            user_id="alice",
            type=TransactionType.BUY,
            instrument_id="005930",
            quantity=10,
            price=Decimal("68000"),
            fee=Decimal("0"),
            executed_at=datetime(2025, 11, 10, 10, 0, tzinfo=KST),
        )
    )
    for day, close in ((MON, "68000"), (TUE, "69000"), (WED, "70000")):
        await _close(price_store, "005930", day, close)
    await _close(price_store, "000660", TUE, "200000")
    await _close(price_store, "000660", WED, "190000")


@pytest.fixture
def reconstructor(
    accounts: InMemoryAccountRepository,
    ledger: InMemoryLedger,
    price_store: PriceHistoryStore,
    calendar: TradingCalendar,
) -> PortfolioReconstructor:
    return PortfolioReconstructor(accounts, ledger, price_store, calendar)


@pytest.fixture
def snapshot_service(
    accounts: InMemoryAccountRepository,
    snapshot_repo: InMemorySnapshotRepository,
    reconstructor: PortfolioReconstructor,
    calendar: TradingCalendar,
) -> SnapshotService:
    return SnapshotService(accounts, snapshot_repo, reconstructor, calendar)


class TestMarketContextStage:
    @pytest.mark.asyncio
    async def test_breadth_and_movers(
        self,
        scenario: None,
        price_store: PriceHistoryStore,
        analysis: InMemoryAnalysisRepository,
    ) -> None:
        stage = MarketContextStage(price_store, analysis)

        result = await stage.run(WED)

        assert result.status == ItemStatus.SUCCEEDED
        context = await analysis.get_market_context(WED)
        assert context is not None
        assert context.instrument_count == 2
        assert (context.advancers, context.decliners, context.unchanged) == (1, 1, 0)
        # (+1.45 - 5.00) / 2
        assert context.average_change_pct == Decimal("-1.78")
        assert context.top_gainer == "005930"
        assert context.top_loser == "000660"
        assert context.cost == Decimal("0")

    @pytest.mark.asyncio
    async def test_first_day_has_no_changes(
        self,
        scenario: None,
        price_store: PriceHistoryStore,
        analysis: InMemoryAnalysisRepository,
    ) -> None:
        context = await MarketContextStage(price_store, analysis).build(MON)

        assert context.instrument_count == 1
        assert context.advancers == context.decliners == 0
        assert context.top_gainer is None
        assert context.top_loser is None

    @pytest.mark.asyncio
    async def test_existing_context_kept_unless_forced(
        self,
        scenario: None,
        price_store: PriceHistoryStore,
        analysis: InMemoryAnalysisRepository,
    ) -> None:
        await analysis.save_market_context(MarketContext(WED, 99, 0, 0, 0, Decimal("0")))
        stage = MarketContextStage(price_store, analysis)

        kept = await stage.run(WED)
        stale = await analysis.get_market_context(WED)
        forced = await stage.run(WED, force=True)
        rebuilt = await analysis.get_market_context(WED)

        assert kept.status == ItemStatus.SKIPPED
        assert kept.message == "already_present"
        assert stale is not None and stale.instrument_count == 99
        assert forced.status == ItemStatus.SUCCEEDED
        assert rebuilt is not None and rebuilt.instrument_count == 2


class TestSnapshotStage:
    @pytest.mark.asyncio
    async def test_writes_snapshots(
        self,
        scenario: None,
        snapshot_service: SnapshotService,
        snapshot_repo: InMemorySnapshotRepository,
    ) -> None:
        result = await SnapshotStage(snapshot_service).run(TUE)

        assert result.status == ItemStatus.SUCCEEDED
        assert result.details["succeeded"] == 1
        snapshot = await snapshot_repo.get_snapshot("alice", TUE)
        assert snapshot is not None
        assert snapshot.total_assets == Decimal("10010000.00")

    @pytest.mark.asyncio
    async def test_all_accounts_failing_fails_the_stage(
        self,
        snapshot_service: SnapshotService,
        accounts: InMemoryAccountRepository,
        ledger: InMemoryLedger,
    ) -> None:
        await accounts.save_account(_make_account())
        await ledger.append_transaction(
            Transaction(
                id="oversell",
                user_id="alice",
                type=TransactionType.SELL,
                instrument_id="005930",
                quantity=5,
                price=Decimal("68000"),
                fee=Decimal("0"),
                executed_at=datetime(2025, 11, 10, 10, 0, tzinfo=KST),
            )
        )

        result = await SnapshotStage(snapshot_service).run(WED)

        assert result.failed
        assert result.message == "all_items_failed"
        assert result.details["errors"][0]["error_type"] == "DataIntegrityError"


class TestPersonalizedAnalysisStage:
    @pytest.fixture
    def stage(
        self,
        accounts: InMemoryAccountRepository,
        snapshot_repo: InMemorySnapshotRepository,
        reconstructor: PortfolioReconstructor,
        analysis: InMemoryAnalysisRepository,
    ) -> PersonalizedAnalysisStage:
        return PersonalizedAnalysisStage(accounts, snapshot_repo, reconstructor, analysis)

    @pytest.mark.asyncio
    async def test_day_change_against_previous_snapshot(
        self,
        scenario: None,
        stage: PersonalizedAnalysisStage,
        snapshot_service: SnapshotService,
        analysis: InMemoryAnalysisRepository,
    ) -> None:
        await snapshot_service.create_daily_snapshot("alice", TUE)
        await snapshot_service.create_daily_snapshot("alice", WED)

        result = await stage.run(WED)

        assert result.status == ItemStatus.SUCCEEDED
        report = await analysis.get_portfolio_analysis("alice", WED)
        assert report is not None
        assert report.total_assets == Decimal("10020000.00")
        assert report.day_change == Decimal("10000.00")
        assert report.day_change_pct == Decimal("0.10")
        assert report.holdings_count == 1
        assert report.trades_count == 0

    @pytest.mark.asyncio
    async def test_missing_snapshot_is_skipped(
        self, scenario: None, stage: PersonalizedAnalysisStage
    ) -> None:
        result = await stage.run(WED)

        assert result.status == ItemStatus.SUCCEEDED
        assert result.details["skipped"] == 1

    @pytest.mark.asyncio
    async def test_force_clears_the_days_analyses(
        self,
        scenario: None,
        stage: PersonalizedAnalysisStage,
        analysis: InMemoryAnalysisRepository,
    ) -> None:
        await analysis.save_portfolio_analysis(
            PortfolioAnalysis("departed", WED, Decimal("1"), Decimal("0"), Decimal("0"), 0, 0, "")
        )

        await stage.run(WED, force=True)

        assert await analysis.get_portfolio_analysis("departed", WED) is None


class TestRankingStage:
    @pytest.fixture
    def stage(
        self,
        accounts: InMemoryAccountRepository,
        snapshot_repo: InMemorySnapshotRepository,
        rankings: InMemoryRankingRepository,
        calendar: TradingCalendar,
    ) -> RankingStage:
        return RankingStage(RankingEngine(accounts, snapshot_repo, rankings, calendar), calendar)

    @pytest.mark.asyncio
    async def test_latest_trading_day_recomputes_every_period(
        self,
        scenario: None,
        stage: RankingStage,
        rankings: InMemoryRankingRepository,
    ) -> None:
        result = await stage.run(WED)

        assert result.status == ItemStatus.SUCCEEDED
        assert set(result.details) == {"WEEKLY", "MONTHLY", "ALL_TIME"}
        for period in RankingPeriod:
            assert len(await rankings.list_period(period)) == 1

    @pytest.mark.asyncio
    async def test_older_dates_leave_rankings_alone(
        self,
        scenario: None,
        stage: RankingStage,
        rankings: InMemoryRankingRepository,
    ) -> None:
        result = await stage.run(TUE)

        assert result.status == ItemStatus.SKIPPED
        assert result.message == "not_latest_trading_day"
        assert result.details == {"latest_trading_day": "2025-11-12"}
        assert await rankings.list_period(RankingPeriod.WEEKLY) == []
