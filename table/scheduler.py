"""
调度抽象

BOT 的思考延迟、リベンジ窗口计时都表示为 "延迟后回调"，
引擎内部从不 sleep。

- ManualScheduler: 虚拟时钟，测试与模拟使用，完全确定
- ThreadScheduler: threading.Timer，实际对局使用
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
import heapq
import itertools
import logging
import threading
import time

logger = logging.getLogger(__name__)


DelayRange = Tuple[float, float]


@dataclass(frozen=True)
class TimingConfig:
    """
    延迟配置 (秒)

    Attributes:
        turn_delay: BOT 普通回合思考时间
        realtime_delay: どてんこ抢先宣言反应时间
        revenge_delay: リベンジ反应时间
        challenge_delay: 挑战阶段每步时间
        revenge_window: リベンジ窗口长度
    """
    turn_delay: DelayRange = (0.5, 3.0)
    realtime_delay: DelayRange = (0.1, 2.0)
    revenge_delay: DelayRange = (0.5, 2.0)
    challenge_delay: DelayRange = (0.5, 2.0)
    revenge_window: float = 5.0

    def __post_init__(self):
        for name in ("turn_delay", "realtime_delay", "revenge_delay", "challenge_delay"):
            low, high = getattr(self, name)
            if low < 0 or high < low:
                raise ValueError(f"{name} must satisfy 0 <= low <= high, got {(low, high)}")
        if self.revenge_window < 0:
            raise ValueError(f"revenge_window must be >= 0, got {self.revenge_window}")

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'TimingConfig':
        valid_keys = cls.__dataclass_fields__.keys()
        filtered = {}
        for k, v in d.items():
            if k not in valid_keys:
                continue
            filtered[k] = float(v) if k == "revenge_window" else tuple(float(x) for x in v)
        return cls(**filtered)

    @classmethod
    def instant(cls) -> 'TimingConfig':
        """所有延迟为 0 (快速模拟)"""
        return cls(
            turn_delay=(0.0, 0.0),
            realtime_delay=(0.0, 0.0),
            revenge_delay=(0.0, 0.0),
            challenge_delay=(0.0, 0.0),
            revenge_window=0.0,
        )


class ScheduledTask:
    """
    已调度的回调

    cancel() 后不会再执行；已执行的任务 cancel() 无效果
    """

    def __init__(self, due: float, callback: Callable[[], None], label: str = ""):
        self.due = due
        self.label = label
        self._callback = callback
        self._cancelled = False
        self._done = False
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._done

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._done)

    def cancel(self) -> bool:
        """取消，返回是否成功 (未执行过)"""
        with self._lock:
            if self._done:
                return False
            self._cancelled = True
            return True

    def fire(self) -> bool:
        """执行回调，返回是否实际执行"""
        with self._lock:
            if self._cancelled or self._done:
                return False
            self._done = True
        self._callback()
        return True

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else ("done" if self._done else "pending")
        return f"ScheduledTask({self.label!r}, due={self.due:.3f}, {state})"


class Scheduler(ABC):
    """调度器接口"""

    @abstractmethod
    def schedule(self, delay: float, callback: Callable[[], None], label: str = "") -> ScheduledTask:
        """delay 秒后执行 callback"""

    @abstractmethod
    def now(self) -> float:
        """当前时间 (秒)"""

    def shutdown(self) -> None:
        """释放资源"""


class ManualScheduler(Scheduler):
    """
    虚拟时钟调度器

    到期时间相同的任务按调度顺序执行
    """

    def __init__(self):
        self._now = 0.0
        self._seq = itertools.count()
        self._queue: List[Tuple[float, int, ScheduledTask]] = []

    def now(self) -> float:
        return self._now

    def schedule(self, delay: float, callback: Callable[[], None], label: str = "") -> ScheduledTask:
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        task = ScheduledTask(self._now + delay, callback, label)
        heapq.heappush(self._queue, (task.due, next(self._seq), task))
        return task

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, task in self._queue if task.pending)

    def next_due(self) -> Optional[float]:
        """下一个待执行任务的到期时间"""
        self._drop_cancelled()
        return self._queue[0][0] if self._queue else None

    def _drop_cancelled(self) -> None:
        while self._queue and not self._queue[0][2].pending:
            heapq.heappop(self._queue)

    def _run_next(self, deadline: Optional[float]) -> bool:
        self._drop_cancelled()
        if not self._queue:
            return False
        due, _, task = self._queue[0]
        if deadline is not None and due > deadline:
            return False
        heapq.heappop(self._queue)
        self._now = max(self._now, due)
        task.fire()
        return True

    def advance(self, seconds: float) -> int:
        """
        时钟前进 seconds 秒，执行期间到期的所有任务

        Returns:
            执行的任务数
        """
        deadline = self._now + seconds
        fired = 0
        while self._run_next(deadline):
            fired += 1
        self._now = deadline
        return fired

    def run_until_idle(self, max_tasks: int = 100_000) -> int:
        """
        执行直到没有待执行任务

        Args:
            max_tasks: 上限 (防止无限循环)

        Returns:
            执行的任务数
        """
        fired = 0
        while self._run_next(None):
            fired += 1
            if fired >= max_tasks:
                raise RuntimeError(f"Scheduler did not become idle after {max_tasks} tasks")
        return fired


class ThreadScheduler(Scheduler):
    """
    基于 threading.Timer 的实时调度器

    回调在计时器线程上执行，由引擎的锁串行化
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._timers: Dict[int, threading.Timer] = {}
        self._ids = itertools.count()

    def now(self) -> float:
        return time.monotonic()

    def schedule(self, delay: float, callback: Callable[[], None], label: str = "") -> ScheduledTask:
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        task = ScheduledTask(self.now() + delay, callback, label)
        timer_id = next(self._ids)

        def run():
            try:
                task.fire()
            except Exception:
                logger.exception("Scheduled task %r failed", task.label)
            finally:
                with self._lock:
                    self._timers.pop(timer_id, None)

        timer = threading.Timer(delay, run)
        timer.daemon = True
        with self._lock:
            self._timers[timer_id] = timer
        timer.start()
        return task

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._timers)

    def shutdown(self) -> None:
        """停止所有计时器"""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
