"""Web 服务模块"""

from .hub import BroadcastHub, Connection
from .server import WebServer

__all__ = ["BroadcastHub", "Connection", "WebServer"]
