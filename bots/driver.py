"""
BOT 调度

每当回合状态变化，为相关 BOT 安排一个延迟决策:
- 普通回合 / 挑战 / リベンジ: 绑定创建时的 version 与阶段
- 抢先宣言: 绑定创建时的场牌，场牌不变则保留

决策基于创建时的快照，提交时由引擎校验，过期的决策作为 StaleAction 丢弃
"""
from typing import Callable, Dict, List, Optional, Tuple
import logging
import random

from dotenko.actions import Intent
from dotenko.cards import Card
from dotenko.phases import Phase
from dotenko.state import RoundState

from .policy import (
    BotObservation,
    decide_turn,
    decide_challenge,
    decide_revenge,
    realtime_candidates,
)

logger = logging.getLogger(__name__)


# (顶牌, 场牌张数, 顶牌所有者)
FieldSignature = Tuple[Optional[Card], int, Optional[str]]

Decision = Callable[[BotObservation], Optional[Intent]]


def field_signature(state: RoundState) -> FieldSignature:
    return state.field_top, len(state.field), state.field_owner


class BotDriver:
    """
    BOT 决策调度器

    Args:
        scheduler: 调度器 (table.scheduler.Scheduler)
        timing: 延迟配置 (table.scheduler.TimingConfig)
        rng: 延迟随机源
        submit: (player_id, intent, expected_version, expected_phase) -> IntentResult
    """

    def __init__(
        self,
        scheduler,
        timing,
        rng: random.Random,
        submit: Callable[..., object],
    ):
        self.scheduler = scheduler
        self.timing = timing
        self.rng = rng
        self._submit = submit
        self._tasks = []
        self._realtime: Dict[str, Tuple[FieldSignature, object]] = {}

    @property
    def pending_tasks(self) -> List:
        self._tasks = [t for t in self._tasks if t.pending]
        return list(self._tasks)

    def cancel_all(self) -> int:
        """取消本局所有待执行的 BOT 决策"""
        cancelled = sum(1 for t in self._tasks if t.cancel())
        self._tasks = []
        self._realtime.clear()
        if cancelled:
            logger.debug("Cancelled %d pending bot tasks", cancelled)
        return cancelled

    def _delay(self, delay_range: Tuple[float, float]) -> float:
        low, high = delay_range
        return self.rng.uniform(low, high)

    def _schedule(self, delay_range, callback, label: str):
        task = self.scheduler.schedule(self._delay(delay_range), callback, label)
        self._tasks.append(task)
        logger.debug("Scheduled %s in %.2fs", label, task.due - self.scheduler.now())
        return task

    def _is_bot(self, state: RoundState, player_id: Optional[str]) -> bool:
        if player_id is None:
            return False
        player = state.find_player(player_id)
        return player is not None and not player.is_human

    # ------------------------------------------------------------------
    # 状态变化
    # ------------------------------------------------------------------

    def on_state(self, state: RoundState) -> None:
        """状态变化时安排 BOT 决策"""
        self._tasks = [t for t in self._tasks if t.pending]

        if state.phase == Phase.PLAYING:
            self._schedule_realtime(state)
            if self._is_bot(state, state.current_turn):
                self._schedule_decision(state, state.current_turn, decide_turn, self.timing.turn_delay, "turn")

        elif state.phase == Phase.DOTENKO_PROCESSING:
            for pid in state.revenge_eligible_players:
                if self._is_bot(state, pid):
                    self._schedule_decision(state, pid, decide_revenge, self.timing.revenge_delay, "revenge")

        elif state.phase == Phase.CHALLENGE:
            challenger = state.challenge_turn
            for pid in realtime_candidates(state):
                if pid != challenger:
                    self._schedule_decision(state, pid, decide_revenge, self.timing.challenge_delay, "challenge-declare")
            if self._is_bot(state, challenger):
                self._schedule_decision(state, challenger, decide_challenge, self.timing.challenge_delay, "challenge")

    def _schedule_decision(
        self,
        state: RoundState,
        player_id: str,
        decide: Decision,
        delay_range: Tuple[float, float],
        kind: str,
    ) -> None:
        version, phase = state.version, state.phase

        def fire():
            # 基于创建时的快照决策，由引擎校验是否过期
            intent = decide(BotObservation.from_state(state, player_id))
            if intent is None:
                return
            logger.debug("Bot %s %s decision: %s", player_id, kind, intent)
            self._submit(player_id, intent, expected_version=version, expected_phase=phase)

        self._schedule(delay_range, fire, f"{kind}:{player_id}@v{version}")

    def _schedule_realtime(self, state: RoundState) -> None:
        """场牌变化后新满足条件的 BOT 抢先宣言"""
        signature = field_signature(state)
        candidates = realtime_candidates(state)

        for pid in list(self._realtime):
            sig, task = self._realtime[pid]
            if sig != signature or pid not in candidates or not task.pending:
                task.cancel()
                del self._realtime[pid]

        for pid in candidates:
            if pid in self._realtime:
                continue

            def fire(pid=pid):
                self._realtime.pop(pid, None)
                self._submit(pid, Intent.declare(pid), expected_version=None, expected_phase=Phase.PLAYING)

            task = self._schedule(self.timing.realtime_delay, fire, f"realtime:{pid}@v{state.version}")
            self._realtime[pid] = (signature, task)
