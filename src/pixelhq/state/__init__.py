"""State 模块 - 全局活动模式与衰减"""

from .machine import StateMachine, StateChangeHandler, wall_clock_ms
from .types import Mode, StateMessage

__all__ = [
    "Mode",
    "StateMessage",
    "StateMachine",
    "StateChangeHandler",
    "wall_clock_ms",
]
