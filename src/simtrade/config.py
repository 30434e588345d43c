"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class CalendarSettings(BaseSettings):
    """Fixed market timezone and trading session bounds."""

    model_config = SettingsConfigDict(env_prefix="CALENDAR_")

    timezone: str = "Asia/Seoul"  # every calendar date is normalized here
    market_open_hour: int = 9
    market_open_minute: int = 0
    market_close_hour: int = 15
    market_close_minute: int = 30


class StoreSettings(BaseSettings):
    """SQLite persistence location."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    db_path: str = "data/simtrade.db"


class PriceSourceSettings(BaseSettings):
    """External price-quote source pacing and symbol mapping."""

    model_config = SettingsConfigDict(env_prefix="PRICE_SOURCE_")

    min_request_interval: float = 1.0  # seconds between requests (source allows ~1 req/s)
    request_timeout: float = 10.0
    symbol_suffix: str = ".KS"  # KOSPI listing on Yahoo; KOSDAQ uses .KQ
    kosdaq_suffix: str = ".KQ"


class BackfillSettings(BaseSettings):
    """Price-history backfill and missing-date repair configuration."""

    model_config = SettingsConfigDict(env_prefix="BACKFILL_")

    history_days: int = 365
    lookback_days: int = 7
    max_lookback_days: int = 90  # cost control for scan windows


class PortfolioSettings(BaseSettings):
    """Account defaults."""

    model_config = SettingsConfigDict(env_prefix="PORTFOLIO_")

    default_initial_capital: Decimal = Decimal("10000000")  # seed capital for new accounts


class RankingSettings(BaseSettings):
    """Ranking computation parameters."""

    model_config = SettingsConfigDict(env_prefix="RANKING_")

    top_n: int = 100  # rows kept per league per period


class LeagueSettings(BaseSettings):
    """League tier thresholds."""

    model_config = SettingsConfigDict(env_prefix="LEAGUE_")

    hall_of_fame_threshold: Decimal = Decimal("100000000")  # inclusive


class RewardSettings(BaseSettings):
    """Monthly reward amounts per league and rank bracket."""

    model_config = SettingsConfigDict(env_prefix="REWARD_")

    rookie_top10_amount: Decimal = Decimal("10000000")
    rookie_top100_amount: Decimal = Decimal("5000000")
    hall_top100_amount: Decimal = Decimal("0")  # not defined yet, skipped while zero
    top_bracket_max_rank: int = 10
    eligible_max_rank: int = 100


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    calendar: CalendarSettings = CalendarSettings()
    store: StoreSettings = StoreSettings()
    price_source: PriceSourceSettings = PriceSourceSettings()
    backfill: BackfillSettings = BackfillSettings()
    portfolio: PortfolioSettings = PortfolioSettings()
    ranking: RankingSettings = RankingSettings()
    league: LeagueSettings = LeagueSettings()
    reward: RewardSettings = RewardSettings()
