"""Web 服务器"""

from typing import TYPE_CHECKING

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from ..config import WS_PATH

if TYPE_CHECKING:
    from ..runtime import RuntimeComponents


class WebServer:
    """HTTP + WebSocket 服务器

    路由：
    - POST /hook        由 HookReceiver 注册
    - GET  /api/state   当前模式 {mode, ts}
    - GET  /api/health  连接数与模式
    - WS   /ws?token=   BroadcastHub
    """

    def __init__(self, components: "RuntimeComponents"):
        self.app = FastAPI(title="PixelHQ")
        self.state_machine = components.state_machine
        self.hub = components.hub

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        )

        self._setup_routes()
        components.receiver.setup_routes(self.app)

    def _setup_routes(self):
        @self.app.get("/api/state")
        async def get_state():
            snapshot = self.state_machine.snapshot()
            return {"mode": snapshot.mode.value, "ts": snapshot.timestamp}

        @self.app.get("/api/health")
        async def health():
            return {
                "ok": True,
                "clients": self.hub.client_count,
                "mode": self.state_machine.mode.value,
            }

        @self.app.websocket(WS_PATH)
        async def websocket_endpoint(websocket: WebSocket):
            await self.hub.handle(websocket)
