"""Competitive layer: rankings, league tiers and monthly rewards."""

from simtrade.ranking.engine import RankingEngine
from simtrade.ranking.league import LeagueClassifier, LeagueSummary
from simtrade.ranking.rewards import RewardDistributor, RewardInfo

__all__ = [
    "LeagueClassifier",
    "LeagueSummary",
    "RankingEngine",
    "RewardDistributor",
    "RewardInfo",
]
