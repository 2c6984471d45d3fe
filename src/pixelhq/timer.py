"""Timer - 周期任务调度

在 asyncio 事件循环上驱动周期回调（目前只有状态机的衰减检查）。
支持同步/异步回调，异常隔离，由调用方管理生命周期。

使用示例:
    timer = Timer()
    timer.register_interval("state.decay_tick", 0.5, machine.tick)

    task = asyncio.create_task(timer.run())
    ...
    timer.stop()
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Coroutine

from .config import METRICS_ENABLED, TIMER_TICK_INTERVAL
from .telemetry import get_logger, metrics

logger = get_logger(__name__)

Callback = Callable[[], Any | Coroutine[Any, Any, Any]]


@dataclass
class IntervalTask:
    """周期任务"""
    name: str
    interval: float  # 秒
    callback: Callback
    last_run: float = 0.0  # 上次运行时间（event loop time）


class Timer:
    """周期任务调度器

    单个 Timer 在一个协程里轮询所有周期任务；stop() 之后 run() 返回，
    正在等待的 sleep 会被取消。
    """

    def __init__(self, tick_interval: float | None = None):
        """
        Args:
            tick_interval: 轮询间隔（秒），None 使用配置默认值
        """
        self._tick_interval = tick_interval or TIMER_TICK_INTERVAL
        self._interval_tasks: dict[str, IntervalTask] = {}
        self._running = False
        self._task: asyncio.Task | None = None

    def register_interval(self, name: str, interval: float, callback: Callback) -> None:
        """注册周期任务，同名任务会被替换

        Args:
            name: 任务名（用于日志和取消）
            interval: 执行间隔（秒）
            callback: 回调函数（同步或异步）
        """
        self._interval_tasks[name] = IntervalTask(name=name, interval=interval, callback=callback)
        logger.debug(f"[Timer] Registered interval task: {name} ({interval}s)")

    def unregister_interval(self, name: str) -> bool:
        """取消注册周期任务

        Returns:
            是否存在并被移除
        """
        if self._interval_tasks.pop(name, None) is None:
            return False
        logger.debug(f"[Timer] Unregistered interval task: {name}")
        return True

    async def run(self) -> None:
        """主循环，持续运行直到 stop() 或被取消"""
        if self._running:
            logger.warning("[Timer] Already running")
            return

        self._running = True
        self._task = asyncio.current_task()
        logger.info(f"[Timer] Started (tick={self._tick_interval}s)")

        try:
            while self._running:
                await self._tick()
                await asyncio.sleep(self._tick_interval)
        except asyncio.CancelledError:
            logger.info("[Timer] Cancelled")
        finally:
            self._running = False
            self._task = None

    def stop(self) -> None:
        """停止主循环（幂等）"""
        if not self._running:
            return

        self._running = False
        logger.info("[Timer] Stopping...")

        if self._task and not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()

    async def _tick(self) -> None:
        now = asyncio.get_running_loop().time()

        for task in list(self._interval_tasks.values()):
            if now - task.last_run >= task.interval:
                task.last_run = now
                await self._execute_callback(task.name, task.callback)

    async def _execute_callback(self, name: str, callback: Callback) -> None:
        """执行回调（带异常隔离）"""
        try:
            result = callback()
            if inspect.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"[Timer] Task '{name}' failed: {e}")
            if METRICS_ENABLED:
                metrics.inc("timer.errors", {"task": name})

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval_task_count(self) -> int:
        return len(self._interval_tasks)

    def get_interval_tasks(self) -> list[str]:
        """获取所有周期任务名"""
        return list(self._interval_tasks.keys())
