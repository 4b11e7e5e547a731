"""内嵌的 Admin HTTP 服务: 会话事件接入与管理接口, 与调度器共用事件循环, 随 shutdown_event 退出"""

from __future__ import annotations

import asyncio
import time

import uvicorn

from idle_nudge.config.settings import ADMIN_HTTP_HOST, ADMIN_HTTP_PORT
from idle_nudge.logger import logger

from .app import create_app
from .schemas import RuntimeControl


async def main_loop(shutdown_event: asyncio.Event) -> None:
    app = create_app(RuntimeControl(shutdown_event=shutdown_event, started_at=time.time()))
    server = uvicorn.Server(
        uvicorn.Config(app, host=ADMIN_HTTP_HOST, port=ADMIN_HTTP_PORT, log_level="warning", access_log=False)
    )
    # 系统信号由 main.py 统一处理
    server.install_signal_handlers = lambda: None

    async def stop_on_shutdown() -> None:
        await shutdown_event.wait()
        logger.info("停止接收会话事件")
        server.should_exit = True

    watcher = asyncio.create_task(stop_on_shutdown(), name="admin-http-watcher")
    logger.info(f"会话事件接入: POST http://{ADMIN_HTTP_HOST}:{ADMIN_HTTP_PORT}/api/v1/events")
    try:
        await server.serve()
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)
        logger.info("Admin HTTP 服务已关闭")
