"""PixelHQ 配置

配置分为以下几类：
- 网络配置：HTTP / WebSocket 监听地址
- 衰减配置：静默多久回落到 thinking / idle
- Timer 配置：定时器参数
- Hub 配置：WebSocket 鉴权与发送缓冲
- 持久化配置：token 与 config.json 位置
"""

import os
from pathlib import Path

# === 网络配置 ===
HTTP_HOST = "0.0.0.0"
HTTP_PORT = int(os.environ.get("PIXELHQ_PORT", "8787"))  # HTTP 与 /ws 共用端口
WS_PATH = "/ws"

# === 衰减配置（毫秒）===
THINKING_TIMEOUT_MS = 3000  # 3s 无事件 -> thinking
IDLE_TIMEOUT_MS = 25000  # 25s 无事件 -> idle
DECAY_TICK_INTERVAL_MS = 500  # 每 500ms 检查一次

# === Timer 配置 ===
TIMER_TICK_INTERVAL = 0.1  # Timer tick 间隔（秒），需小于衰减检查间隔

# === Hub 配置 ===
WS_CLOSE_INVALID_TOKEN = 4001  # token 不匹配时的关闭码
WS_CLOSE_GOING_AWAY = 1001  # 服务关闭
WS_OUTBOX_MAX_SIZE = 32  # 每个连接的发送缓冲，溢出丢弃最旧消息

# === 持久化配置 ===
CONFIG_DIR = Path(os.environ.get("PIXELHQ_HOME", Path.home() / ".pixelhq"))
TOKEN_FILE_NAME = "token"
CONFIG_FILE_NAME = "config.json"
TOKEN_LENGTH = 6
DEFAULT_COMPANY_NAME = "NINJA NOODLES"

# === Hook 转发配置 ===
HOOK_ENDPOINT = f"http://127.0.0.1:{HTTP_PORT}/hook"
HOOK_TIMEOUT_SECONDS = 2.0

# === 日志配置 ===
LOG_LEVEL = os.environ.get("PIXELHQ_LOG_LEVEL", "INFO")

# === 指标配置 ===
METRICS_ENABLED = True
