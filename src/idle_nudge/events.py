"""事件总线模块，定义了事件总线类 Bus 及事件名集合 E

会话生命周期事件由事件源 (HTTP 接入或进程内调用) 发布到总线，提醒调度器订阅并处理。
处理器均为协程，pyee 会按 emit 顺序为每个处理器创建任务。
"""

from __future__ import annotations
from typing import Awaitable, Callable, Set

from pyee.asyncio import AsyncIOEventEmitter

from idle_nudge.logger import logger

AsyncHandler = Callable[..., Awaitable[None]]

# 事件名集中定义
class E:
    SESSION_IDLE = "session.idle"
    SESSION_ACTIVITY = "session.activity"
    SESSION_END = "session.end"

# 独占事件：仅允许一个处理器注册, 保证同一会话的状态只被一个调度器修改
EXCLUSIVE_EVENTS = {E.SESSION_IDLE, E.SESSION_ACTIVITY, E.SESSION_END}


class Bus(AsyncIOEventEmitter):
    def __init__(self) -> None:
        super().__init__()
        self._exclusive: Set[str] = set()
        super(Bus, self).on("error", self._log_handler_error)

    @staticmethod
    def _log_handler_error(error: BaseException) -> None:
        # 处理器内的异常不应影响其它会话
        logger.opt(exception=error).error(f"事件处理器执行异常: {error}")

    def on(self, event: str) -> Callable[[AsyncHandler], AsyncHandler]:
        """注册事件处理器装饰器"""
        def decorator(handler: AsyncHandler) -> AsyncHandler:
            if event in EXCLUSIVE_EVENTS:
                if event in self._exclusive:
                    raise RuntimeError(f"独占事件的唯一处理器已注册: {event}")
                self._exclusive.add(event)

            logger.debug(f"注册事件处理器: {event} -> {handler.__name__}")
            super(Bus, self).on(event, handler)
            return handler

        return decorator


bus = Bus()

__all__ = ["bus", "Bus", "E", "EXCLUSIVE_EVENTS"]
