"""局域网地址与客户端连接 URL"""

import socket

from .config import WS_PATH

_PROBE_ADDRESS = ("10.255.255.255", 1)


def get_local_ip() -> str:
    """本机局域网 IPv4 地址，拿不到时返回 127.0.0.1

    UDP connect 不会真正发包，只是让内核选出出口地址。
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect(_PROBE_ADDRESS)
        ip = sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        sock.close()

    if not ip or ip.startswith("127.") or ip == "0.0.0.0":
        return "127.0.0.1"
    return ip


def http_url(ip: str, port: int) -> str:
    return f"http://{ip}:{port}"


def ws_url(ip: str, port: int, token: str) -> str:
    return f"ws://{ip}:{port}{WS_PATH}?token={token}"
