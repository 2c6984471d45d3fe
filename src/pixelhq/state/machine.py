"""StateMachine - 全局活动模式状态机

职责：
- 维护 current_mode / last_event_time / protection_expires_at
- emit: 外部事件设置模式，模式变化时同步通知所有订阅者
- tick: 周期检查静默时长，回落到 thinking / idle
- destroy: 取消衰减 tick

保护期只屏蔽静默衰减，不会在到期瞬间强制回退；到期后要等下一条
静默阈值满足才会变化。
"""

import threading
import time
from typing import Callable

from ..config import (
    DECAY_TICK_INTERVAL_MS,
    IDLE_TIMEOUT_MS,
    METRICS_ENABLED,
    THINKING_TIMEOUT_MS,
)
from ..telemetry import get_logger, metrics
from ..timer import Timer
from .types import Mode, StateMessage

logger = get_logger(__name__)

StateChangeHandler = Callable[[StateMessage], object]
Clock = Callable[[], int]

DECAY_TASK_NAME = "state.decay_tick"


def wall_clock_ms() -> int:
    """当前时间（毫秒）"""
    return int(time.time() * 1000)


class StateMachine:
    """进程内唯一的模式状态机

    所有读写都在同一把可重入锁内完成，emit 与 tick 不会交错；
    订阅者在锁内按注册顺序同步调用，因此广播顺序与事件顺序一致。

    Attributes:
        mode: 当前模式
        last_event_time: 最近一次 emit 的时间（毫秒）
        protection_expires_at: 保护期到期时间（毫秒），None 表示无保护
    """

    def __init__(
        self,
        timer: Timer | None = None,
        clock: Clock | None = None,
        thinking_timeout_ms: int = THINKING_TIMEOUT_MS,
        idle_timeout_ms: int = IDLE_TIMEOUT_MS,
        tick_interval_ms: int = DECAY_TICK_INTERVAL_MS,
    ):
        self._clock = clock or wall_clock_ms
        self._thinking_timeout_ms = thinking_timeout_ms
        self._idle_timeout_ms = idle_timeout_ms
        self._tick_interval_ms = tick_interval_ms

        self._lock = threading.RLock()
        self._current_mode = Mode.IDLE
        self._last_event_time = self._clock()
        self._protection_expires_at: int | None = None
        self._handlers: list[StateChangeHandler] = []

        self._timer = timer
        self._destroyed = False
        if timer is not None:
            timer.register_interval(DECAY_TASK_NAME, tick_interval_ms / 1000, self.tick)

    # === 属性 ===

    @property
    def mode(self) -> Mode:
        return self._current_mode

    @property
    def last_event_time(self) -> int:
        return self._last_event_time

    @property
    def protection_expires_at(self) -> int | None:
        return self._protection_expires_at

    @property
    def is_protected(self) -> bool:
        expires_at = self._protection_expires_at
        return expires_at is not None and self._clock() < expires_at

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    # === 订阅 ===

    def on_change(self, handler: StateChangeHandler) -> None:
        """注册模式变化订阅者（按注册顺序调用）"""
        with self._lock:
            self._handlers.append(handler)

    def snapshot(self) -> StateMessage:
        """当前模式的新快照"""
        with self._lock:
            return StateMessage(mode=self._current_mode, timestamp=self._clock())

    # === 核心方法 ===

    def emit(self, mode: Mode | str, ttl_ms: int | None = None) -> bool:
        """设置模式

        总是刷新 last_event_time；ttl_ms 为真值时设置保护期，否则清除保护期。
        只有模式实际变化时才广播。

        Args:
            mode: 目标模式
            ttl_ms: 保护期（毫秒）

        Returns:
            是否发生了模式变化
        """
        mode = Mode(mode)
        with self._lock:
            now = self._clock()
            self._last_event_time = now
            self._protection_expires_at = now + ttl_ms if ttl_ms else None

            if mode == self._current_mode:
                return False

            logger.debug(f"[StateMachine] emit {self._current_mode.value} -> {mode.value} (ttl={ttl_ms})")
            self._set_mode(mode)
            return True

    def tick(self) -> Mode | None:
        """衰减检查（由 Timer 周期调用）

        Returns:
            发生变化时返回新模式，否则 None
        """
        with self._lock:
            now = self._clock()

            # 到期只解除保护，不改变模式
            if self._protection_expires_at is not None and now >= self._protection_expires_at:
                self._protection_expires_at = None

            if self._current_mode.is_feedback and self._protection_expires_at is not None:
                return None

            silence = now - self._last_event_time
            if silence >= self._idle_timeout_ms:
                if self._current_mode != Mode.IDLE:
                    self._set_mode(Mode.IDLE)
                    return Mode.IDLE
            elif silence >= self._thinking_timeout_ms:
                if self._current_mode not in (Mode.THINKING, Mode.IDLE):
                    self._set_mode(Mode.THINKING)
                    return Mode.THINKING
            return None

    def destroy(self) -> None:
        """取消衰减 tick（进程关闭时调用一次）"""
        with self._lock:
            if self._destroyed:
                logger.warning("[StateMachine] destroy() called more than once")
                return
            self._destroyed = True
            timer, self._timer = self._timer, None

        if timer is not None:
            timer.unregister_interval(DECAY_TASK_NAME)
            timer.stop()
        logger.info("[StateMachine] Destroyed")

    # === 内部 ===

    def _set_mode(self, mode: Mode) -> None:
        self._current_mode = mode
        if METRICS_ENABLED:
            metrics.inc("state.changes", {"mode": mode.value})
        self._broadcast()

    def _broadcast(self) -> None:
        message = StateMessage(mode=self._current_mode, timestamp=self._clock())
        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception as e:
                logger.error(f"[StateMachine] Change handler failed: {e}")
                if METRICS_ENABLED:
                    metrics.inc("state.handler_errors")
