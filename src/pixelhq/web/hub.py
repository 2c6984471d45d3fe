"""BroadcastHub - 已认证 WebSocket 连接的扇出广播

职责：
- 握手：校验 ?token=，失败以 4001 关闭，成功加入集合并发送快照
- 扇出：订阅 StateMachine.on_change，序列化一次后发给所有 open 连接
- 移除：连接 close / error 时移出集合，重连由客户端负责

每个 Connection 有一个有界 outbox + writer task，保证快照和后续广播
按顺序送达；outbox 满时丢弃最旧消息（每条都是完整快照，最新者胜）。
"""

import asyncio
import hmac
import json
from collections import deque
from typing import TYPE_CHECKING

from fastapi import WebSocket
from pydantic import BaseModel, ValidationError
from starlette.websockets import WebSocketState

from ..config import (
    METRICS_ENABLED,
    WS_CLOSE_GOING_AWAY,
    WS_CLOSE_INVALID_TOKEN,
    WS_OUTBOX_MAX_SIZE,
)
from ..telemetry import get_logger, metrics

if TYPE_CHECKING:
    from ..state import StateMachine, StateMessage

logger = get_logger(__name__)


class ClientHello(BaseModel):
    """客户端问候消息（仅记录日志）"""

    type: str
    version: int | str | None = None
    client: str | None = None
    token: str | None = None


class Connection:
    """单个已认证连接

    Attributes:
        websocket: 底层 WebSocket
        conn_id: 连接序号（日志用）
    """

    def __init__(self, websocket: WebSocket, conn_id: int, max_size: int = WS_OUTBOX_MAX_SIZE):
        self.websocket = websocket
        self.conn_id = conn_id
        self._outbox: deque[str] = deque()
        self._max_size = max_size
        self._wakeup = asyncio.Event()
        self._writer: asyncio.Task | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        """连接是否处于可发送状态"""
        if self._closed:
            return False
        ws = self.websocket
        return (
            ws.client_state == WebSocketState.CONNECTED
            and ws.application_state == WebSocketState.CONNECTED
        )

    @property
    def pending(self) -> int:
        return len(self._outbox)

    def start(self) -> None:
        """启动 writer task"""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop(), name=f"ws-writer-{self.conn_id}")

    def send(self, payload: str) -> None:
        """入队一条消息（不等待发送完成）"""
        if len(self._outbox) >= self._max_size:
            self._outbox.popleft()
            logger.warning(f"[Hub:{self.conn_id}] Outbox full, dropped oldest message")
            if METRICS_ENABLED:
                metrics.inc("hub.dropped")
        self._outbox.append(payload)
        self._wakeup.set()

    async def close(self, code: int | None = None) -> None:
        """停止 writer；给出 code 时同时关闭底层 WebSocket"""
        if self._closed:
            return
        self._closed = True
        self._outbox.clear()

        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass

        if code is not None and self.websocket.application_state == WebSocketState.CONNECTED:
            try:
                await self.websocket.close(code=code)
            except Exception as e:
                logger.debug(f"[Hub:{self.conn_id}] Close failed: {e}")

    async def _write_loop(self) -> None:
        while not self._closed:
            await self._wakeup.wait()
            self._wakeup.clear()
            while self._outbox and not self._closed:
                payload = self._outbox.popleft()
                try:
                    await self.websocket.send_text(payload)
                except Exception as e:
                    # 只有连接自己的 close/error 才移除
                    logger.debug(f"[Hub:{self.conn_id}] Send failed: {e}")
                    if METRICS_ENABLED:
                        metrics.inc("hub.send_errors")


class BroadcastHub:
    """已认证连接集合 + 扇出广播"""

    def __init__(
        self,
        state_machine: "StateMachine",
        token: str,
        outbox_size: int = WS_OUTBOX_MAX_SIZE,
    ):
        self._state_machine = state_machine
        self._token = token
        self._outbox_size = outbox_size
        self._connections: set[Connection] = set()
        self._next_id = 1

        state_machine.on_change(self._on_state_change)

    @property
    def client_count(self) -> int:
        return len(self._connections)

    def authenticate(self, token: str | None) -> bool:
        """token 精确匹配"""
        if token is None:
            return False
        return hmac.compare_digest(token.encode("utf-8"), self._token.encode("utf-8"))

    async def handle(self, websocket: WebSocket) -> None:
        """WebSocket 端点处理函数，连接存续期间不返回"""
        await websocket.accept()

        if not self.authenticate(websocket.query_params.get("token")):
            logger.info("[Hub] Rejected connection: invalid token")
            if METRICS_ENABLED:
                metrics.inc("hub.rejected")
            await websocket.close(code=WS_CLOSE_INVALID_TOKEN, reason="Invalid token")
            return

        conn = self._register(websocket)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.debug(f"[Hub:{conn.conn_id}] Disconnected ({message.get('code')})")
                    break
                # 文本帧和二进制帧都接受
                text = message.get("text")
                if text is None and message.get("bytes") is not None:
                    text = message["bytes"].decode("utf-8", errors="replace")
                if text is not None:
                    self._handle_client_message(conn, text)
        except Exception as e:
            logger.debug(f"[Hub:{conn.conn_id}] Connection error: {e}")
        finally:
            self._unregister(conn)
            await conn.close()

    def broadcast(self, message: "StateMessage") -> int:
        """发送给所有 open 连接

        Returns:
            实际入队的连接数
        """
        payload = message.to_json()
        sent = 0
        for conn in list(self._connections):
            if not conn.is_open:
                if METRICS_ENABLED:
                    metrics.inc("hub.skipped")
                continue
            conn.send(payload)
            sent += 1
        logger.debug(f"[Hub] Broadcast {message.mode.value} to {sent}/{len(self._connections)}")
        return sent

    async def close_all(self, code: int = WS_CLOSE_GOING_AWAY) -> None:
        """关闭全部连接（服务关闭时调用）"""
        conns = list(self._connections)
        self._connections.clear()
        for conn in conns:
            await conn.close(code=code)
        self._update_gauge()
        if conns:
            logger.info(f"[Hub] Closed {len(conns)} connection(s)")

    # === 内部 ===

    def _on_state_change(self, message: "StateMessage") -> None:
        self.broadcast(message)

    def _register(self, websocket: WebSocket) -> Connection:
        conn = Connection(websocket, self._next_id, max_size=self._outbox_size)
        self._next_id += 1

        # 加入集合与快照入队之间没有 await，不会夹入其他广播
        self._connections.add(conn)
        conn.send(self._state_machine.snapshot().to_json())
        conn.start()

        self._update_gauge()
        logger.info(f"[Hub:{conn.conn_id}] Client authenticated ({self.client_count} connected)")
        return conn

    def _unregister(self, conn: Connection) -> None:
        self._connections.discard(conn)
        self._update_gauge()

    def _handle_client_message(self, conn: Connection, data: str) -> None:
        try:
            hello = ClientHello.model_validate(json.loads(data))
        except (ValueError, ValidationError):
            return
        if hello.type == "hello":
            logger.info(f"[Hub:{conn.conn_id}] Client connected: {hello.client} v{hello.version}")

    def _update_gauge(self) -> None:
        if METRICS_ENABLED:
            metrics.gauge("hub.connections", len(self._connections))
