"""HTTP Hook 接收器 - 接收外部 Hook 事件"""

import json
from typing import TYPE_CHECKING

from fastapi import Request
from fastapi.responses import JSONResponse

from ..config import METRICS_ENABLED
from ..telemetry import get_logger, metrics
from .classifier import ModeChange, classify_payload

if TYPE_CHECKING:
    from fastapi import FastAPI

    from ..state import StateMachine

logger = get_logger(__name__)


class HookReceiver:
    """HTTP Hook 接收器

    提供 `POST /hook` 端点：解析 JSON -> 分类 -> StateMachine.emit。
    JSON 解析失败返回 400，状态不变；无法识别的事件仍返回 200。
    """

    def __init__(self, state_machine: "StateMachine"):
        self.state_machine = state_machine

    def handle_payload(self, payload: object) -> ModeChange | None:
        """分类并应用一条已解析的事件"""
        if METRICS_ENABLED:
            metrics.inc("hooks.received")

        change = classify_payload(payload)
        if change is None:
            if METRICS_ENABLED:
                metrics.inc("hooks.ignored")
            return None

        self.state_machine.emit(change.mode, change.ttl_ms)
        return change

    def setup_routes(self, app: "FastAPI") -> None:
        """设置 API 路由"""

        @app.post("/hook")
        async def receive_hook(request: Request):
            """接收 Hook 事件"""
            body = await request.body()
            try:
                payload = json.loads(body)
            except ValueError:
                logger.debug(f"[HookReceiver] Invalid JSON ({len(body)} bytes)")
                if METRICS_ENABLED:
                    metrics.inc("hooks.invalid_json")
                return JSONResponse(status_code=400, content={"error": "Invalid JSON"})

            change = self.handle_payload(payload)
            if change is not None:
                logger.debug(f"[HookReceiver] {change.mode.value} (ttl={change.ttl_ms}ms)")
            return {"ok": True}
