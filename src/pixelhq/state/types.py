"""State 模块数据类型定义

包含：
- Mode: 活动模式枚举（全局唯一权威状态）
- StateMessage: 广播给显示端的状态快照
"""

import json
from dataclasses import dataclass
from enum import Enum


class Mode(str, Enum):
    """活动模式枚举

    状态设计（6 个）：
    - IDLE: 长时间无事件
    - TYPING: 正在写文件
    - RUNNING: 正在执行命令
    - THINKING: 阅读/搜索，或短暂静默
    - CELEBRATE: 任务完成
    - ERROR: 工具失败
    """
    IDLE = "idle"
    TYPING = "typing"
    RUNNING = "running"
    THINKING = "thinking"
    CELEBRATE = "celebrate"
    ERROR = "error"

    @property
    def is_feedback(self) -> bool:
        """短暂反馈状态，保护期内不参与静默衰减"""
        return self in {Mode.CELEBRATE, Mode.ERROR}

    @classmethod
    def values(cls) -> list[str]:
        return [m.value for m in cls]


@dataclass(frozen=True)
class StateMessage:
    """状态快照

    每次广播都重新构造，序列化为 {"type": "state", "mode": ..., "ts": ...}。

    Attributes:
        mode: 当前模式
        timestamp: 构造时间（毫秒）
    """
    mode: Mode
    timestamp: int

    def to_dict(self) -> dict:
        return {"type": "state", "mode": self.mode.value, "ts": self.timestamp}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
