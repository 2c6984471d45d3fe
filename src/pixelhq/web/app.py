"""FastAPI 应用初始化与服务启动"""

import asyncio

import uvicorn
from fastapi import FastAPI

from .. import config
from ..runtime import RuntimeComponents, bootstrap
from ..telemetry import get_logger
from .server import WebServer

logger = get_logger(__name__)


def create_app(components: RuntimeComponents) -> FastAPI:
    """创建 Web 应用"""
    return WebServer(components).app


async def start_server(token: str, host: str = config.HTTP_HOST, port: int = config.HTTP_PORT) -> None:
    """启动服务器，直到 uvicorn 退出"""
    components = bootstrap(token)
    app = create_app(components)

    timer_task = asyncio.create_task(components.timer.run())
    logger.info("[Timer] Decay tick scheduled")

    uvicorn_config = uvicorn.Config(app, host=host, port=port, log_level=config.LOG_LEVEL.lower())
    uvicorn_server = uvicorn.Server(uvicorn_config)

    logger.info(f"PixelHQ server starting at http://{host}:{port}")

    try:
        await uvicorn_server.serve()
    finally:
        await components.shutdown()
        # shutdown() 已停止 timer；task 尚未开始运行时仍需 cancel
        timer_task.cancel()
        try:
            await timer_task
        except asyncio.CancelledError:
            pass


def run_server(token: str, host: str = config.HTTP_HOST, port: int = config.HTTP_PORT) -> None:
    """同步入口"""
    try:
        asyncio.run(start_server(token, host=host, port=port))
    except KeyboardInterrupt:
        logger.info("Server stopped")
