"""Async SQLite database manager for the engine's relational store.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance. Money is stored as TEXT (restored
as Decimal), calendar dates as ``YYYY-MM-DD`` TEXT and instants as epoch
milliseconds.
"""

import os
from typing import Self

import aiosqlite

from simtrade.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS instruments (
    instrument_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    market TEXT NOT NULL DEFAULT 'KOSPI',
    open_price TEXT,
    high_price TEXT,
    low_price TEXT,
    current_price TEXT,
    volume INTEGER NOT NULL DEFAULT 0,
    updated_at_ms INTEGER
);

CREATE TABLE IF NOT EXISTS price_candles (
    instrument_id TEXT NOT NULL,
    date TEXT NOT NULL,
    open TEXT NOT NULL,
    high TEXT NOT NULL,
    low TEXT NOT NULL,
    close TEXT NOT NULL,
    volume INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (instrument_id, date)
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    instrument_id TEXT NOT NULL,
    quantity INTEGER NOT NULL,
    price TEXT NOT NULL,
    fee TEXT NOT NULL,
    executed_at_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS accounts (
    user_id TEXT PRIMARY KEY,
    username TEXT NOT NULL,
    league TEXT NOT NULL DEFAULT 'ROOKIE',
    league_updated_at_ms INTEGER,
    initial_capital TEXT NOT NULL,
    cash TEXT NOT NULL,
    total_assets TEXT NOT NULL,
    total_return TEXT NOT NULL,
    created_at_ms INTEGER NOT NULL,
    weekly_start_assets TEXT,
    monthly_start_assets TEXT
);

CREATE TABLE IF NOT EXISTS capital_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    amount TEXT NOT NULL,
    reason TEXT NOT NULL,
    new_total TEXT NOT NULL,
    created_at_ms INTEGER NOT NULL,
    reward_type TEXT,
    reward_rank INTEGER,
    period_label TEXT,
    league TEXT,
    description TEXT
);

CREATE TABLE IF NOT EXISTS portfolio_snapshots (
    user_id TEXT NOT NULL,
    date TEXT NOT NULL,
    cash TEXT NOT NULL,
    holdings_value TEXT NOT NULL,
    total_assets TEXT NOT NULL,
    total_return TEXT NOT NULL,
    price_gaps TEXT NOT NULL DEFAULT '[]',
    PRIMARY KEY (user_id, date)
);

CREATE TABLE IF NOT EXISTS rankings (
    user_id TEXT NOT NULL,
    period TEXT NOT NULL,
    league TEXT NOT NULL,
    rank INTEGER NOT NULL,
    period_return TEXT NOT NULL,
    reward_given INTEGER NOT NULL DEFAULT 0,
    reward_amount TEXT NOT NULL DEFAULT '0',
    as_of TEXT NOT NULL,
    PRIMARY KEY (user_id, period)
);

CREATE TABLE IF NOT EXISTS market_contexts (
    date TEXT PRIMARY KEY,
    instrument_count INTEGER NOT NULL,
    advancers INTEGER NOT NULL,
    decliners INTEGER NOT NULL,
    unchanged INTEGER NOT NULL,
    average_change_pct TEXT NOT NULL,
    top_gainer TEXT,
    top_loser TEXT,
    cost TEXT NOT NULL DEFAULT '0'
);

CREATE TABLE IF NOT EXISTS portfolio_analyses (
    user_id TEXT NOT NULL,
    date TEXT NOT NULL,
    total_assets TEXT NOT NULL,
    day_change TEXT NOT NULL,
    day_change_pct TEXT NOT NULL,
    holdings_count INTEGER NOT NULL,
    trades_count INTEGER NOT NULL,
    summary TEXT NOT NULL,
    cost TEXT NOT NULL DEFAULT '0',
    PRIMARY KEY (user_id, date)
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_candles_date
    ON price_candles(date);

CREATE INDEX IF NOT EXISTS idx_transactions_user_ts
    ON transactions(user_id, executed_at_ms);

CREATE INDEX IF NOT EXISTS idx_capital_history_user
    ON capital_history(user_id, created_at_ms);

CREATE UNIQUE INDEX IF NOT EXISTS idx_capital_history_reward_once
    ON capital_history(user_id, period_label) WHERE reward_type IS NOT NULL;

CREATE INDEX IF NOT EXISTS idx_rankings_period_league_rank
    ON rankings(period, league, rank);

CREATE INDEX IF NOT EXISTS idx_snapshots_date
    ON portfolio_snapshots(date);
"""


class SimTradeDatabase:
    """Async SQLite connection manager for the engine's store.

    Manages database lifecycle including schema creation, WAL mode
    configuration, and clean resource cleanup.

    Usage:
        # Context manager (recommended)
        async with SimTradeDatabase("/path/to/db") as db:
            await db.db.execute("SELECT ...")

        # In-memory, for tests
        async with SimTradeDatabase(":memory:") as db:
            ...
    """

    def __init__(self, db_path: str = "data/simtrade.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema.

        Creates the parent directory if it does not exist.
        """
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("simtrade_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("simtrade_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
