"""
比赛编排

一场比赛由 round_count 局组成:
- 累计得分带入下一局
- 先手每局轮换
- 按得分排名，同分同名次
"""
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from dotenko.config import GameRuleConfig
from dotenko.scoring import ScoreResult
from dotenko.state import Player

from .round_engine import RoundEngine
from .scheduler import ManualScheduler, Scheduler, TimingConfig

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """比赛结果"""
    rounds: List[ScoreResult] = field(default_factory=list)
    players: Tuple[Player, ...] = ()

    @property
    def scores(self) -> Dict[str, int]:
        return {p.player_id: p.score for p in self.players}

    def get_ranking(self) -> List[Tuple[str, int, int]]:
        """[(player_id, score, rank), ...] 按名次排序"""
        return sorted(
            ((p.player_id, p.score, p.rank) for p in self.players),
            key=lambda x: (x[2], -x[1]),
        )

    def __repr__(self) -> str:
        lines = [f"Match Results ({len(self.rounds)} rounds):"]
        for pid, score, rank in self.get_ranking():
            lines.append(f"  {rank}. {pid}: {score}")
        return "\n".join(lines)


def rank_players(players: Iterable[Player]) -> Tuple[Player, ...]:
    """
    按得分设置名次

    同分共享名次，下一名次跳过 (1, 1, 3)
    """
    players = tuple(players)
    scores = [p.score for p in players]
    return tuple(
        replace(p, rank=1 + sum(1 for s in scores if s > p.score))
        for p in players
    )


class Match:
    """
    多局比赛

    Args:
        player_ids: 玩家 ID (座位顺序)
        config: 规则配置
        humans: 人类玩家 ID
        scheduler: 调度器 (默认 ManualScheduler，即时模拟)
        timing: BOT 延迟配置
        seed: 随机种子，每局派生不同种子
    """

    def __init__(
        self,
        player_ids: Sequence[str],
        config: Optional[GameRuleConfig] = None,
        humans: Iterable[str] = (),
        scheduler: Optional[Scheduler] = None,
        timing: Optional[TimingConfig] = None,
        seed: Optional[int] = None,
    ):
        humans = set(humans)
        unknown = humans - set(player_ids)
        if unknown:
            raise ValueError(f"Unknown human players: {sorted(unknown)}")

        self.config = config or GameRuleConfig()
        self.scheduler = scheduler or ManualScheduler()
        self.timing = timing or TimingConfig()
        self.seed = seed
        self.players: Tuple[Player, ...] = tuple(
            Player(pid, is_human=pid in humans) for pid in player_ids
        )
        self.rounds_played = 0
        self.result = MatchResult(players=self.players)

        # 新一局引擎创建后调用 (用于挂接通知)
        self.on_round_start: List[Callable[[RoundEngine], None]] = []

    @property
    def is_finished(self) -> bool:
        return self.rounds_played >= self.config.round_count

    @property
    def first_player(self) -> str:
        """本局先手 (每局轮换)"""
        return self.players[self.rounds_played % len(self.players)].player_id

    def _round_seed(self) -> Optional[int]:
        if self.seed is None:
            return None
        return self.seed * 1000 + self.rounds_played

    def new_round(self) -> RoundEngine:
        """创建下一局的引擎 (带入累计得分)"""
        if self.is_finished:
            raise RuntimeError(f"Match already finished after {self.rounds_played} rounds")

        engine = RoundEngine(
            self.players,
            config=self.config,
            scheduler=self.scheduler,
            timing=self.timing,
            seed=self._round_seed(),
            first_player=self.first_player,
        )
        logger.info(
            "Round %d/%d, first player %s",
            self.rounds_played + 1, self.config.round_count, self.first_player,
        )
        for listener in list(self.on_round_start):
            listener(engine)
        return engine

    def record(self, engine: RoundEngine) -> ScoreResult:
        """记录已结束的一局"""
        state = engine.current_snapshot()
        if not state.is_finished:
            raise RuntimeError(f"Round is not finished (phase {state.phase.value})")

        self.players = rank_players(
            replace(p, hand=(), declared=False, has_drawn_this_turn=False)
            for p in state.players
        )
        self.rounds_played += 1
        self.result.rounds.append(state.score_result)
        self.result.players = self.players

        logger.info(
            "Round %d finished: %s",
            self.rounds_played,
            ", ".join(f"{p.player_id}={p.score}" for p in self.players),
        )
        return state.score_result

    def play_round(self) -> ScoreResult:
        """
        用 ManualScheduler 运行一局全 BOT 对局

        Raises:
            RuntimeError: 需要人类输入，或调度器不是 ManualScheduler
        """
        if not isinstance(self.scheduler, ManualScheduler):
            raise RuntimeError("play_round requires a ManualScheduler")

        engine = self.new_round()
        engine.start()
        self.scheduler.run_until_idle()
        if not engine.is_finished:
            engine.shutdown()
            raise RuntimeError(
                f"Round stalled in {engine.phase.value}; human input is required"
            )
        return self.record(engine)

    def play(self) -> MatchResult:
        """运行剩余所有局"""
        while not self.is_finished:
            self.play_round()
        return self.result
