"""Hook 系统 - 接收外部工具事件

模块结构：
- classifier: HookEvent 请求体与 (模式, 保护期) 映射
- receiver: HookReceiver HTTP 接收器
- forwarder: stdin -> /hook 转发脚本
"""

from .classifier import HookEvent, ModeChange, classify, classify_payload
from .receiver import HookReceiver

__all__ = [
    "HookEvent",
    "ModeChange",
    "classify",
    "classify_payload",
    "HookReceiver",
]
