"""Hook 转发脚本 - Claude Code hook -> PixelHQ

由 Claude Code hooks 调用：从 stdin 读取一条 hook payload，规范化后
POST 到本地服务的 /hook。任何失败都静默退出 0，不打断调用方。

~/.claude/settings.json 示例:
    {
      "hooks": {
        "PreToolUse": [{"command": "pixelhq-hook"}],
        "PostToolUse": [{"command": "pixelhq-hook"}],
        "Stop": [{"command": "pixelhq-hook"}]
      }
    }
"""

import json
import sys
from typing import TextIO

import httpx

from ..config import HOOK_ENDPOINT, HOOK_TIMEOUT_SECONDS
from ..telemetry import get_logger

logger = get_logger(__name__)


def normalize_hook_input(raw: dict) -> dict:
    """把 Claude Code 原始 payload 转为 HookEvent 格式

    兼容 {"type", "tool": {"name"}} 与 {"hook_event_name", "tool_name"} 两种形状。
    """
    tool = raw.get("tool")
    if isinstance(tool, dict):
        tool = tool.get("name")
    if tool is None:
        tool = raw.get("tool_name")

    exit_code = raw.get("exitCode")
    if exit_code is None:
        response = raw.get("tool_response")
        if isinstance(response, dict):
            exit_code = response.get("exit_code")

    event = {
        "type": raw.get("type") or raw.get("hook_event_name"),
        "tool": tool,
        "exitCode": exit_code,
        "error": raw.get("error"),
    }
    return {k: v for k, v in event.items() if v is not None}


def forward(raw_input: str, endpoint: str = HOOK_ENDPOINT, client: httpx.Client | None = None) -> bool:
    """转发一条 hook payload

    Returns:
        是否成功送达（2xx）
    """
    if not raw_input.strip():
        return False

    try:
        raw = json.loads(raw_input)
    except ValueError:
        logger.debug("[Forwarder] stdin is not JSON")
        return False
    if not isinstance(raw, dict):
        return False

    event = normalize_hook_input(raw)
    try:
        if client is None:
            with httpx.Client(timeout=HOOK_TIMEOUT_SECONDS) as own_client:
                response = own_client.post(endpoint, json=event)
        else:
            response = client.post(endpoint, json=event)
    except httpx.HTTPError as e:
        logger.debug(f"[Forwarder] POST failed: {e}")
        return False

    return response.is_success


def main(stdin: TextIO | None = None) -> None:
    """console script 入口"""
    forward((stdin or sys.stdin).read())
    sys.exit(0)
