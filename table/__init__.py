"""
Table Layer - 回合引擎宿主与比赛编排

Modules:
    scheduler: 调度抽象 (虚拟时钟 / threading.Timer)
    round_engine: 串行化意图的回合引擎
    match: 多局比赛
"""
from .scheduler import (
    TimingConfig,
    ScheduledTask,
    Scheduler,
    ManualScheduler,
    ThreadScheduler,
)

from .round_engine import RoundEngine, IntentResult

from .match import Match, MatchResult, rank_players

__all__ = [
    # scheduler
    "TimingConfig",
    "ScheduledTask",
    "Scheduler",
    "ManualScheduler",
    "ThreadScheduler",
    # round_engine
    "RoundEngine",
    "IntentResult",
    # match
    "Match",
    "MatchResult",
    "rank_players",
]
