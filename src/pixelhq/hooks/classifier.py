"""Hook 分类器 - 工具事件 -> (模式, 保护期)

纯函数，不持有状态，也不对无法识别的事件抛异常。

映射表：
- PreToolUse + Write/Edit/NotebookEdit           -> typing, 5000ms
- PreToolUse + Bash                              -> running, 10000ms
- PreToolUse + Read/Grep/Glob/Task/WebFetch/...  -> thinking, 3000ms
- Stop                                           -> celebrate, 2000ms
- Error，或非 PreToolUse 且 exitCode 非零         -> error, 2000ms
- 其他                                           -> 忽略
"""

from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from ..state import Mode
from ..telemetry import get_logger

logger = get_logger(__name__)

TYPING_TOOLS = frozenset({"Write", "Edit", "NotebookEdit"})
RUNNING_TOOLS = frozenset({"Bash"})
THINKING_TOOLS = frozenset({"Read", "Grep", "Glob", "Task", "WebFetch", "WebSearch"})

TYPING_TTL_MS = 5000
RUNNING_TTL_MS = 10000
THINKING_TTL_MS = 3000
CELEBRATE_TTL_MS = 2000
ERROR_TTL_MS = 2000


class HookEvent(BaseModel):
    """Hook 事件请求体

    来自不可信的 JSON，字段全部可选且不校验类型；未知字段忽略。
    分类只按相等比较，类型不符的字段等同于不匹配，不会让整个事件失效。
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Any = None  # PreToolUse / PostToolUse / Stop / Error
    tool: Any = None
    exit_code: Any = Field(default=None, alias="exitCode")


class ModeChange(NamedTuple):
    """分类结果"""

    mode: Mode
    ttl_ms: int


def classify(event: HookEvent) -> ModeChange | None:
    """把 HookEvent 映射为模式变化

    Returns:
        ModeChange，或 None 表示忽略
    """
    if event.type == "PreToolUse":
        tool = event.tool if isinstance(event.tool, str) else None
        if tool in TYPING_TOOLS:
            return ModeChange(Mode.TYPING, TYPING_TTL_MS)
        if tool in RUNNING_TOOLS:
            return ModeChange(Mode.RUNNING, RUNNING_TTL_MS)
        if tool in THINKING_TOOLS:
            return ModeChange(Mode.THINKING, THINKING_TTL_MS)
        return None

    if event.type == "Stop":
        return ModeChange(Mode.CELEBRATE, CELEBRATE_TTL_MS)

    # 任何真值且非零的 exitCode 都算失败
    if event.type == "Error" or (event.exit_code and event.exit_code != 0):
        return ModeChange(Mode.ERROR, ERROR_TTL_MS)

    return None


def classify_payload(payload: Any) -> ModeChange | None:
    """对已解析的 JSON 做分类，非对象一律忽略"""
    if not isinstance(payload, dict):
        logger.debug(f"[Classifier] Ignoring non-object payload: {type(payload).__name__}")
        return None
    return classify(HookEvent.model_validate(payload))
