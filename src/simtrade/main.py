"""Command-line entry point for the simtrade batch engine.

Wires all components together and runs one trigger per invocation. The
scheduler (cron or similar) calls these sub-commands; every run prints its
summary as JSON on stdout and logs through structlog.

Component wiring order (in _build_components):
1. SimTradeDatabase + SQLite repositories
2. TradingCalendar
3. YahooPriceSource + RateLimiter
4. PriceHistoryStore
5. DailyPriceCollector, HistoricalBackfillFetcher
6. PortfolioReconstructor, SnapshotService
7. RankingEngine, LeagueClassifier, RewardDistributor
8. Backfill stages + BackfillOrchestrator
9. TriggerSurface

SIGINT/SIGTERM set a cancel event that batch loops check between items.
"""

import argparse
import asyncio
import json
import signal
import sys
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from simtrade.backfill.orchestrator import BackfillOrchestrator
from simtrade.backfill.stages import (
    MarketContextStage,
    PersonalizedAnalysisStage,
    RankingStage,
    SnapshotStage,
)
from simtrade.config import AppSettings
from simtrade.data.collector import DailyPriceCollector
from simtrade.data.database import SimTradeDatabase
from simtrade.data.fetcher import HistoricalBackfillFetcher
from simtrade.data.models import Instrument
from simtrade.data.store import PriceHistoryStore
from simtrade.exceptions import ConflictError, SimTradeError, ValidationError
from simtrade.logging import get_logger, setup_logging
from simtrade.models import Account, League, RankingPeriod, to_jsonable
from simtrade.persistence.sqlite import (
    SqliteAccountRepository,
    SqliteAnalysisRepository,
    SqliteCandleRepository,
    SqliteInstrumentRepository,
    SqliteLedger,
    SqliteRankingRepository,
    SqliteSnapshotRepository,
)
from simtrade.portfolio.reconstructor import WINDOW_PRESETS, PortfolioReconstructor
from simtrade.portfolio.snapshots import SnapshotService
from simtrade.quotes.rate_limiter import RateLimiter
from simtrade.quotes.yahoo_client import YahooPriceSource
from simtrade.ranking.engine import RankingEngine
from simtrade.ranking.league import LeagueClassifier
from simtrade.ranking.rewards import RewardDistributor
from simtrade.trading_calendar import TradingCalendar, parse
from simtrade.triggers import TriggerSurface

logger = get_logger("simtrade.main")


async def _build_components(settings: AppSettings, database: SimTradeDatabase) -> dict[str, Any]:
    """Build the full dependency graph on top of a connected database.

    Args:
        settings: Application-wide settings.
        database: Connected SQLite database.

    Returns:
        Dict mapping component names to instances.
    """
    # 1. Repositories
    instruments = SqliteInstrumentRepository(database)
    candles = SqliteCandleRepository(database)
    ledger = SqliteLedger(database)
    accounts = SqliteAccountRepository(database)
    snapshot_repo = SqliteSnapshotRepository(database)
    rankings = SqliteRankingRepository(database)
    analysis = SqliteAnalysisRepository(database)

    # 2. Calendar
    calendar = TradingCalendar(settings.calendar)

    # 3. Quote source, with the ticker suffix chosen per listing market
    markets = {i.instrument_id: i.market for i in await instruments.list_instruments()}
    source = YahooPriceSource(settings.price_source, markets)
    rate_limiter = RateLimiter(settings.price_source.min_request_interval)

    # 4-5. Price history
    price_store = PriceHistoryStore(candles, instruments, calendar)
    collector = DailyPriceCollector(source, instruments, price_store, rate_limiter)
    fetcher = HistoricalBackfillFetcher(
        source, price_store, instruments, calendar, rate_limiter, settings.backfill
    )

    # 6. Valuation
    reconstructor = PortfolioReconstructor(accounts, ledger, price_store, calendar)
    snapshots = SnapshotService(accounts, snapshot_repo, reconstructor, calendar)

    # 7. Competition
    ranking_engine = RankingEngine(accounts, snapshot_repo, rankings, calendar, settings.ranking)
    league_classifier = LeagueClassifier(accounts, calendar, settings.league)
    reward_distributor = RewardDistributor(accounts, rankings, calendar, settings.reward)

    # 8. Backfill
    orchestrator = BackfillOrchestrator(
        stages=[
            MarketContextStage(price_store, analysis),
            SnapshotStage(snapshots),
            PersonalizedAnalysisStage(accounts, snapshot_repo, reconstructor, analysis),
            RankingStage(ranking_engine, calendar),
        ],
        analysis=analysis,
        calendar=calendar,
        settings=settings.backfill,
    )

    # 9. Triggers
    triggers = TriggerSurface(
        collector=collector,
        fetcher=fetcher,
        snapshots=snapshots,
        ranking_engine=ranking_engine,
        league_classifier=league_classifier,
        reward_distributor=reward_distributor,
        orchestrator=orchestrator,
        calendar=calendar,
    )

    return {
        "accounts": accounts,
        "instruments": instruments,
        "calendar": calendar,
        "source": source,
        "reconstructor": reconstructor,
        "orchestrator": orchestrator,
        "triggers": triggers,
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="simtrade",
        description="Valuation, ranking and backfill jobs for the trading simulation",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("collect", help="Refresh intraday quotes for every instrument")
    sub.add_parser("close-candles", help="Write today's candles and refresh account metrics")

    prices = sub.add_parser("backfill-prices", help="Fetch historical daily candles")
    prices.add_argument("--days", type=int, default=None, help="Days of history (default: 365)")

    rankings = sub.add_parser("rankings", help="Recompute rankings")
    rankings.add_argument(
        "--period",
        choices=[p.value for p in RankingPeriod],
        default=None,
        help="Single period (default: all)",
    )

    sub.add_parser("leagues", help="Reclassify every account's league")

    rewards = sub.add_parser("rewards", help="Distribute monthly rewards")
    rewards.add_argument("--period", default=None, help="YYYY-MM (default: previous month)")

    backfill = sub.add_parser("backfill", help="Detect and repair missing dates")
    backfill.add_argument("--lookback", type=int, default=None, help="Days to scan (default: 7)")
    backfill.add_argument("--force", action="store_true", help="Regenerate existing output")

    backfill_date = sub.add_parser("backfill-date", help="Regenerate one date or a date range")
    backfill_date.add_argument("start", help="YYYY-MM-DD")
    backfill_date.add_argument("end", nargs="?", default=None, help="YYYY-MM-DD (default: start)")
    backfill_date.add_argument("--force", action="store_true", help="Regenerate existing output")
    backfill_date.add_argument(
        "--include-weekends", action="store_true", help="Also process Saturdays and Sundays"
    )

    history = sub.add_parser("history", help="Reconstruct a user's daily portfolio values")
    history.add_argument("user_id")
    history.add_argument("--window", choices=list(WINDOW_PRESETS), default="all")

    sub.add_parser("midnight", help="Run the midnight job sequence")

    open_account = sub.add_parser("open-account", help="Create a simulation account")
    open_account.add_argument("user_id")
    open_account.add_argument("username")
    open_account.add_argument("--capital", default=None, help="Initial capital (default: settings)")

    add_instrument = sub.add_parser("add-instrument", help="Register a tracked instrument")
    add_instrument.add_argument("instrument_id", help="Six-digit listing code, e.g. 005930")
    add_instrument.add_argument("name")
    add_instrument.add_argument("--market", choices=["KOSPI", "KOSDAQ"], default="KOSPI")

    return parser


async def _dispatch(
    args: argparse.Namespace,
    settings: AppSettings,
    components: dict[str, Any],
    cancel_event: asyncio.Event,
) -> Any:
    triggers: TriggerSurface = components["triggers"]
    command = args.command

    if command == "collect":
        return await triggers.run_daily_collection(cancel_event)
    if command == "close-candles":
        return await triggers.run_daily_candle_close()
    if command == "backfill-prices":
        return await triggers.backfill_prices(args.days, cancel_event)
    if command == "rankings":
        period = RankingPeriod(args.period) if args.period else None
        return await triggers.compute_rankings(period)
    if command == "leagues":
        return await triggers.reclassify_leagues()
    if command == "rewards":
        return await triggers.distribute_monthly_rewards(args.period)
    if command == "backfill":
        return await triggers.backfill_missing(args.lookback, args.force, cancel_event)
    if command == "backfill-date":
        orchestrator: BackfillOrchestrator = components["orchestrator"]
        start = parse(args.start)
        end = parse(args.end) if args.end else start
        summary = await orchestrator.backfill_range(
            start,
            end,
            force=args.force,
            skip_weekends=not args.include_weekends,
            cancel_event=cancel_event,
        )
        return to_jsonable(summary)
    if command == "history":
        reconstructor: PortfolioReconstructor = components["reconstructor"]
        series = await reconstructor.reconstruct_window(args.user_id, args.window)
        return {"user_id": args.user_id, "window": args.window, "snapshots": to_jsonable(series)}
    if command == "midnight":
        return await triggers.run_daily_midnight_tasks()
    if command == "open-account":
        return await _open_account(args, settings, components)
    if command == "add-instrument":
        instrument = Instrument(instrument_id=args.instrument_id, name=args.name, market=args.market)
        await components["instruments"].upsert_instrument(instrument)
        logger.info("instrument_added", instrument_id=instrument.instrument_id, market=instrument.market)
        return to_jsonable(instrument)
    raise ValueError(f"Unknown command: {command}")


async def _open_account(
    args: argparse.Namespace, settings: AppSettings, components: dict[str, Any]
) -> Any:
    accounts = components["accounts"]
    if await accounts.get_account(args.user_id) is not None:
        raise ConflictError(f"Account already exists: {args.user_id}")

    try:
        capital = (
            Decimal(args.capital)
            if args.capital is not None
            else settings.portfolio.default_initial_capital
        )
    except InvalidOperation as e:
        raise ValidationError(f"Invalid capital amount: {args.capital!r}") from e

    account = Account(
        user_id=args.user_id,
        username=args.username,
        league=League.ROOKIE,
        initial_capital=capital,
        cash=capital,
        total_assets=capital,
        total_return=Decimal("0"),
        created_at=datetime.now(timezone.utc),
        weekly_start_assets=capital,
        monthly_start_assets=capital,
    )
    await accounts.save_account(account)
    logger.info("account_opened", user_id=account.user_id, initial_capital=str(capital))
    return to_jsonable(account)


def _setup_signal_handlers(cancel_event: asyncio.Event) -> None:
    """Stop batch loops at the next item boundary on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()

    def _handler() -> None:
        logger.info("cancel_signal_received")
        cancel_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handler)


async def run(args: argparse.Namespace) -> int:
    """Connect, run one command, print its JSON summary. Returns the exit code."""
    settings = AppSettings()
    setup_logging(settings.log_level)

    cancel_event = asyncio.Event()
    _setup_signal_handlers(cancel_event)

    async with SimTradeDatabase(settings.store.db_path) as database:
        components = await _build_components(settings, database)
        try:
            result = await _dispatch(args, settings, components, cancel_event)
        except SimTradeError as e:
            logger.error("command_failed", command=args.command, error=str(e))
            print(json.dumps({"error": type(e).__name__, "message": str(e)}, indent=2))
            return 1
        finally:
            await components["source"].close()

    print(json.dumps(to_jsonable(result), indent=2, ensure_ascii=False))
    return 0


def main() -> None:
    """Entry point for the simtrade command."""
    args = _build_parser().parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
