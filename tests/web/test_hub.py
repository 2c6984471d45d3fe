"""BroadcastHub 单元测试（mock WebSocket）"""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketState

from pixelhq.state import Mode, StateMachine
from pixelhq.telemetry import metrics
from pixelhq.web.hub import BroadcastHub, Connection

TOKEN = "123456"


def _mock_ws(token: str | None = TOKEN, messages: list | None = None):
    """创建 mock WebSocket；messages 用完后等待 disconnect()，再返回断开消息"""
    ws = MagicMock()
    ws.accept = AsyncMock()
    ws.close = AsyncMock()
    ws.send_text = AsyncMock()
    ws.query_params = {"token": token} if token is not None else {}
    ws.client_state = WebSocketState.CONNECTED
    ws.application_state = WebSocketState.CONNECTED

    pending = asyncio.Event()
    inbox = list(messages or [])

    async def receive():
        if inbox:
            data = inbox.pop(0)
            key = "bytes" if isinstance(data, bytes) else "text"
            return {"type": "websocket.receive", key: data}
        await pending.wait()
        return {"type": "websocket.disconnect", "code": 1000}

    ws.receive = AsyncMock(side_effect=receive)
    ws.disconnect = pending.set
    return ws


def _sent(ws) -> list[dict]:
    return [json.loads(call.args[0]) for call in ws.send_text.call_args_list]


async def _drain():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def machine(clock):
    return StateMachine(clock=clock)


@pytest.fixture
def hub(machine):
    return BroadcastHub(machine, TOKEN)


async def _connect(hub, ws):
    task = asyncio.create_task(hub.handle(ws))
    await _drain()
    return task


class TestHandshake:
    """token 校验"""

    def test_authenticate(self, hub):
        assert hub.authenticate(TOKEN) is True
        assert hub.authenticate("654321") is False
        assert hub.authenticate("") is False
        assert hub.authenticate(None) is False
        assert hub.authenticate(TOKEN + " ") is False

    async def test_invalid_token_closed_with_4001(self, hub):
        ws = _mock_ws(token="wrong")
        await hub.handle(ws)

        ws.close.assert_awaited_once_with(code=4001, reason="Invalid token")
        ws.send_text.assert_not_called()
        assert hub.client_count == 0
        assert metrics.get_counter("hub.rejected") == 1

    async def test_missing_token_closed_with_4001(self, hub):
        ws = _mock_ws(token=None)
        await hub.handle(ws)

        ws.close.assert_awaited_once_with(code=4001, reason="Invalid token")
        assert hub.client_count == 0

    async def test_valid_token_gets_snapshot(self, hub, machine, clock):
        machine.emit(Mode.TYPING)
        ws = _mock_ws()
        task = await _connect(hub, ws)

        assert hub.client_count == 1
        assert _sent(ws) == [{"type": "state", "mode": "typing", "ts": clock.now}]
        assert metrics.get_gauge("hub.connections") == 1

        ws.disconnect()
        await task


class TestFanOut:
    """广播"""

    async def test_change_reaches_all_clients(self, hub, machine):
        ws1, ws2 = _mock_ws(), _mock_ws()
        t1 = await _connect(hub, ws1)
        t2 = await _connect(hub, ws2)

        machine.emit(Mode.RUNNING, 10000)
        await _drain()

        assert [m["mode"] for m in _sent(ws1)] == ["idle", "running"]
        assert [m["mode"] for m in _sent(ws2)] == ["idle", "running"]

        ws1.disconnect()
        ws2.disconnect()
        await asyncio.gather(t1, t2)

    async def test_no_broadcast_for_same_mode(self, hub, machine):
        ws = _mock_ws()
        task = await _connect(hub, ws)

        machine.emit(Mode.RUNNING, 10000)
        machine.emit(Mode.RUNNING, 10000)
        await _drain()

        assert [m["mode"] for m in _sent(ws)] == ["idle", "running"]

        ws.disconnect()
        await task

    async def test_messages_delivered_in_order(self, hub, machine):
        ws = _mock_ws()
        task = await _connect(hub, ws)

        for mode in [Mode.TYPING, Mode.RUNNING, Mode.THINKING, Mode.CELEBRATE]:
            machine.emit(mode)
        await _drain()

        assert [m["mode"] for m in _sent(ws)] == ["idle", "typing", "running", "thinking", "celebrate"]

        ws.disconnect()
        await task

    async def test_closing_connection_skipped(self, hub, machine):
        ws_open, ws_closing = _mock_ws(), _mock_ws()
        t1 = await _connect(hub, ws_open)
        t2 = await _connect(hub, ws_closing)
        ws_closing.client_state = WebSocketState.DISCONNECTED

        sent = hub.broadcast(machine.snapshot())
        await _drain()

        assert sent == 1
        assert metrics.get_counter("hub.skipped") == 1
        assert ws_closing.send_text.call_count == 1  # 只有握手快照

        ws_open.disconnect()
        ws_closing.disconnect()
        await asyncio.gather(t1, t2)

    async def test_send_failure_not_raised_and_not_removed(self, hub, machine):
        ws_bad, ws_good = _mock_ws(), _mock_ws()
        ws_bad.send_text.side_effect = ConnectionError("gone")
        t1 = await _connect(hub, ws_bad)
        t2 = await _connect(hub, ws_good)

        machine.emit(Mode.ERROR, 2000)
        await _drain()

        assert hub.client_count == 2
        assert metrics.get_counter("hub.send_errors") >= 1
        assert [m["mode"] for m in _sent(ws_good)] == ["idle", "error"]

        ws_bad.disconnect()
        ws_good.disconnect()
        await asyncio.gather(t1, t2)

    async def test_broadcast_with_no_clients(self, hub, machine):
        assert hub.broadcast(machine.snapshot()) == 0


class TestRemoval:
    async def test_disconnect_removes_connection(self, hub):
        ws = _mock_ws()
        task = await _connect(hub, ws)
        assert hub.client_count == 1

        ws.disconnect()
        await task

        assert hub.client_count == 0
        assert metrics.get_gauge("hub.connections") == 0

    async def test_receive_error_removes_connection(self, hub):
        ws = _mock_ws()
        ws.receive = AsyncMock(side_effect=RuntimeError("broken pipe"))

        await hub.handle(ws)

        assert hub.client_count == 0

    async def test_close_all(self, hub):
        ws1, ws2 = _mock_ws(), _mock_ws()
        t1 = await _connect(hub, ws1)
        t2 = await _connect(hub, ws2)

        await hub.close_all()

        assert hub.client_count == 0
        ws1.close.assert_awaited_once_with(code=1001)
        ws2.close.assert_awaited_once_with(code=1001)

        ws1.disconnect()
        ws2.disconnect()
        await asyncio.gather(t1, t2)


class TestClientMessages:
    async def test_hello_logged(self, hub, caplog):
        caplog.set_level(logging.INFO, logger="pixelhq.web.hub")
        hello = json.dumps({"type": "hello", "version": 1, "client": "pwa", "token": TOKEN})
        ws = _mock_ws(messages=[hello])
        task = await _connect(hub, ws)

        assert "Client connected: pwa v1" in caplog.text

        ws.disconnect()
        await task

    async def test_binary_hello_decoded(self, hub, caplog):
        caplog.set_level(logging.INFO, logger="pixelhq.web.hub")
        hello = json.dumps({"type": "hello", "version": 2, "client": "ios"}).encode("utf-8")
        ws = _mock_ws(messages=[hello])
        task = await _connect(hub, ws)

        assert "Client connected: ios v2" in caplog.text
        assert hub.client_count == 1

        ws.disconnect()
        await task
        assert hub.client_count == 0

    async def test_garbage_ignored(self, hub, machine):
        ws = _mock_ws(messages=["not json", "[1, 2]", '{"type": "other"}'])
        task = await _connect(hub, ws)

        assert hub.client_count == 1
        assert machine.mode == Mode.IDLE

        ws.disconnect()
        await task


class TestConnectionOutbox:
    async def test_overflow_drops_oldest(self):
        ws = _mock_ws()
        conn = Connection(ws, conn_id=1, max_size=2)

        conn.send("a")
        conn.send("b")
        conn.send("c")

        assert conn.pending == 2
        assert metrics.get_counter("hub.dropped") == 1

        conn.start()
        await _drain()
        assert [call.args[0] for call in ws.send_text.call_args_list] == ["b", "c"]

        await conn.close()
        assert conn.is_open is False
