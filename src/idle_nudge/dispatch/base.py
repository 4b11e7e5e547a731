from abc import ABC, abstractmethod
from typing import Sequence

from idle_nudge.datamodel import DeliveryResult, SessionId

__all__ = ["NotificationDispatcher"]


class NotificationDispatcher(ABC):
    """提醒投递接口

    调度器每次触发调用一次 deliver_reminder, 不关心投递是否成功,
    投递耗时的上限由实现自身负责。
    """

    @abstractmethod
    async def deliver_reminder(
        self,
        session_id: SessionId,
        attempt_index: int,
        candidate_messages: Sequence[str],
    ) -> DeliveryResult:
        pass

    async def aclose(self) -> None:
        return None
