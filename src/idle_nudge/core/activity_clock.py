from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Optional

from idle_nudge.datamodel import SessionId

__all__ = ["ActivityClock", "ActivityMark"]


@dataclass(frozen=True)
class ActivityMark:
    kind: Literal["idle", "active"]
    at: float


class ActivityClock:
    """记录每个会话最近一次空闲或操作者活动的时间

    纯簿记, 没有定时器也没有副作用。调度器只在会话的临界区内读写它,
    用来区分新的空闲周期与重复的空闲事件。
    """

    def __init__(self) -> None:
        self._marks: Dict[SessionId, ActivityMark] = {}

    def mark_idle(self, session_id: SessionId, at: float) -> None:
        self._marks[session_id] = ActivityMark("idle", at)

    def mark_active(self, session_id: SessionId, at: float) -> None:
        self._marks[session_id] = ActivityMark("active", at)

    def get(self, session_id: SessionId) -> Optional[float]:
        mark = self._marks.get(session_id)
        return mark.at if mark is not None else None

    def is_idle(self, session_id: SessionId) -> bool:
        mark = self._marks.get(session_id)
        return mark is not None and mark.kind == "idle"

    def idle_since(self, session_id: SessionId) -> Optional[float]:
        mark = self._marks.get(session_id)
        if mark is None or mark.kind != "idle":
            return None
        return mark.at

    def forget(self, session_id: SessionId) -> None:
        self._marks.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._marks

    def __len__(self) -> int:
        return len(self._marks)
