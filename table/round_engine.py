"""
回合引擎

持有唯一的 RoundState，串行化所有人类 / BOT 意图:
- 意图在锁内校验并执行，状态只通过转移替换
- 通知 (阶段变化、结算) 在释放锁后派发
- 进入 dotenko_processing / finished 时取消所有待执行的 BOT 决策
"""
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import Callable, List, Optional, Sequence, Union
import logging
import random
import threading

from dotenko.actions import Intent, IntentType
from dotenko.config import GameRuleConfig
from dotenko.errors import IllegalAction, StaleAction, InvariantViolation
from dotenko.phases import Phase
from dotenko.scoring import ScoringEngine, ScoreResult
from dotenko.state import Player, RoundState
from bots.driver import BotDriver

from .scheduler import Scheduler, ThreadScheduler, TimingConfig, ScheduledTask

logger = logging.getLogger(__name__)


PhaseListener = Callable[[Phase, Phase, RoundState], None]
ScoreListener = Callable[[ScoreResult, RoundState], None]


@dataclass(frozen=True)
class IntentResult:
    """
    意图处理结果

    Attributes:
        accepted: 是否被接受
        reason: 拒绝理由 (供界面显示)
        version: 处理后的状态版本
        stale: 是否因过期被拒绝
    """
    accepted: bool
    reason: str = ""
    version: int = 0
    stale: bool = False

    def __bool__(self) -> bool:
        return self.accepted


class RoundEngine:
    """
    一局どてんこ的权威状态机宿主

    Args:
        players: 玩家或玩家 ID (座位顺序)
        config: 规则配置
        scheduler: 调度器 (默认 ThreadScheduler)
        timing: 延迟配置
        seed: 随机种子 (发牌、重洗与 BOT 延迟)
        first_player: 先手玩家
    """

    def __init__(
        self,
        players: Sequence[Union[Player, str]],
        config: Optional[GameRuleConfig] = None,
        scheduler: Optional[Scheduler] = None,
        timing: Optional[TimingConfig] = None,
        seed: Optional[int] = None,
        first_player: Optional[str] = None,
    ):
        self.config = config or GameRuleConfig()
        self.scheduler = scheduler or ThreadScheduler()
        self.timing = timing or TimingConfig()

        self._rng = random.Random(seed)
        self._lock = threading.Lock()
        self._state = RoundState.initial(players, self.config, first_player)
        self._window_task: Optional[ScheduledTask] = None
        self._fault: Optional[InvariantViolation] = None
        self._finished = threading.Event()

        self.on_phase_change: List[PhaseListener] = []
        self.on_score_settled: List[ScoreListener] = []

        self.bot_driver = BotDriver(
            self.scheduler,
            self.timing,
            random.Random(self._rng.getrandbits(64)),
            submit=self.submit_intent,
        )

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def current_snapshot(self) -> RoundState:
        """当前状态 (不可变，可安全共享)"""
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def is_finished(self) -> bool:
        return self._state.phase == Phase.FINISHED

    @property
    def score_result(self) -> Optional[ScoreResult]:
        return self._state.score_result

    def wait_until_finished(self, timeout: Optional[float] = None) -> bool:
        """阻塞等待本局结束 (仅供外部线程使用)"""
        return self._finished.wait(timeout)

    # ------------------------------------------------------------------
    # 外部操作
    # ------------------------------------------------------------------

    def start(self) -> RoundState:
        """发牌并开始本局"""
        events = []
        with self._lock:
            self._check_fault()
            with self._guard():
                self._apply(self._state.with_dealing(), events)
                self._apply(self._state.with_deal(self._rng), events)
            state = self._state
        logger.info(
            "Round started: starter %s, up rate x%d, first player %s",
            state.field_top, state.up_rate, state.current_turn,
        )
        self._dispatch(events)
        return state

    def submit_intent(
        self,
        player_id: str,
        intent: Intent,
        expected_version: Optional[int] = None,
        expected_phase: Optional[Phase] = None,
    ) -> IntentResult:
        """
        提交意图

        Args:
            player_id: 提交者
            intent: 意图
            expected_version: 决策所基于的状态版本 (BOT 使用)
            expected_phase: 决策所基于的阶段 (BOT 使用)

        Returns:
            处理结果；IllegalAction / StaleAction 转换为拒绝结果

        Raises:
            InvariantViolation: 引擎缺陷
        """
        events = []
        with self._lock:
            self._check_fault()
            state = self._state
            if intent.player_id != player_id:
                return IntentResult(False, "intent does not belong to player", state.version)

            try:
                if expected_version is not None and expected_version != state.version:
                    raise StaleAction(f"state moved from v{expected_version} to v{state.version}")
                if expected_phase is not None and expected_phase != state.phase:
                    raise StaleAction(f"phase moved from {expected_phase.value} to {state.phase.value}")
                with self._guard():
                    new_state = state.with_intent(intent, self._rng)
            except StaleAction as e:
                logger.debug("Stale intent %s: %s", intent, e.reason)
                return IntentResult(False, e.reason, state.version, stale=True)
            except IllegalAction as e:
                logger.debug("Rejected intent %s: %s", intent, e.reason)
                return IntentResult(False, e.reason, state.version)

            if intent.intent_type == IntentType.DECLARE:
                logger.info(
                    "%s declared on %s (%s)",
                    player_id, new_state.field_top, state.phase.value,
                )
            else:
                logger.debug("Accepted intent %s", intent)

            with self._guard():
                self._apply(new_state, events)
            result = IntentResult(True, "", self._state.version)

        self._dispatch(events)
        return result

    def close_revenge_window(self) -> bool:
        """关闭リベンジ窗口 (计时器到期时调用)"""
        events = []
        with self._lock:
            self._check_fault()
            if self._state.phase != Phase.DOTENKO_PROCESSING:
                return False
            with self._guard():
                self._apply(self._state.close_revenge_window(), events)
        self._dispatch(events)
        return True

    def shutdown(self) -> None:
        """取消本局所有计时"""
        with self._lock:
            self.bot_driver.cancel_all()
            if self._window_task is not None:
                self._window_task.cancel()
                self._window_task = None

    # ------------------------------------------------------------------
    # 内部
    # ------------------------------------------------------------------

    def _check_fault(self) -> None:
        if self._fault is not None:
            raise InvariantViolation(f"engine halted: {self._fault}")

    @contextmanager
    def _guard(self):
        """记录 InvariantViolation 并停止引擎，异常继续向上抛出"""
        try:
            yield
        except InvariantViolation as e:
            logger.error("Invariant violated, halting round: %s", e)
            self._fault = e
            raise

    def _apply(self, new_state: RoundState, events: list) -> None:
        """替换状态并处理自动转移 (锁内调用)"""
        old_state = self._state
        self._state = new_state

        if new_state.phase != old_state.phase:
            logger.info(
                "Phase %s -> %s (v%d)",
                old_state.phase.value, new_state.phase.value, new_state.version,
            )
            events.append(partial(self._notify_phase, old_state.phase, new_state.phase, new_state))
            if new_state.phase in (Phase.DOTENKO_PROCESSING, Phase.FINISHED):
                self.bot_driver.cancel_all()
            if old_state.phase == Phase.DOTENKO_PROCESSING and self._window_task is not None:
                self._window_task.cancel()
                self._window_task = None

        if new_state.phase == Phase.DOTENKO_PROCESSING:
            if not new_state.revenge_eligible_players:
                self._apply(new_state.close_revenge_window(), events)
                return
            self.bot_driver.on_state(new_state)
            if new_state.dotenko_winner_id != old_state.dotenko_winner_id:
                self._start_revenge_window(new_state)
            return

        if new_state.phase == Phase.SETTLING:
            result = ScoringEngine.settle(new_state)
            logger.info(
                "Settled %s: winners %s, losers %s, card %s, transfer %d",
                result.outcome.value if result.outcome else "none",
                list(result.winners), list(result.losers),
                result.settlement_card, result.transfer,
            )
            events.append(partial(self._notify_score, result, new_state))
            self._apply(new_state.with_settlement(result), events)
            return

        if new_state.phase == Phase.FINISHED:
            self._finished.set()
            return

        self.bot_driver.on_state(new_state)

    def _start_revenge_window(self, state: RoundState) -> None:
        if self._window_task is not None:
            self._window_task.cancel()
        winner = state.dotenko_winner_id

        def expire():
            events = []
            with self._lock:
                current = self._state
                if current.phase != Phase.DOTENKO_PROCESSING or current.dotenko_winner_id != winner:
                    return
                logger.debug("Revenge window for %s expired", winner)
                with self._guard():
                    self._apply(current.close_revenge_window(), events)
            self._dispatch(events)

        self._window_task = self.scheduler.schedule(
            self.timing.revenge_window, expire, f"revenge-window:{winner}"
        )

    def _notify_phase(self, old: Phase, new: Phase, state: RoundState) -> None:
        for listener in list(self.on_phase_change):
            listener(old, new, state)

    def _notify_score(self, result: ScoreResult, state: RoundState) -> None:
        for listener in list(self.on_score_settled):
            listener(result, state)

    @staticmethod
    def _dispatch(events: list) -> None:
        for event in events:
            event()

