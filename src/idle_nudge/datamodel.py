import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from idle_nudge.utils import epoch_to_utc_str

__all__ = [
    "SessionId",
    "ReminderStatus", "ReminderState",
    "DeliveryResult",
    "SessionEventKind", "SessionEvent",
]

SessionId = str


# ----------------- 提醒状态机 ----------------
class ReminderStatus(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FIRING = "firing"
    CANCELLED = "cancelled"
    EXHAUSTED = "exhausted"


@dataclass(eq=False)
class ReminderState:
    session_id: SessionId
    status: ReminderStatus = ReminderStatus.IDLE
    attempt_count: int = 0  # 本轮空闲已送出的提醒数
    pending_timer: Optional[asyncio.TimerHandle] = None  # 仅由本状态持有, cancel() 是阻止触发的唯一途径
    idle_since: Optional[float] = None  # epoch 秒
    generation: int = 0  # 每次重启或取消提醒链都会自增
    next_fire_at: Optional[float] = None
    last_fired_at: Optional[float] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def is_live(self) -> bool:
        return self.status in (ReminderStatus.SCHEDULED, ReminderStatus.FIRING)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "generation": self.generation,
            "timer_armed": self.pending_timer is not None and not self.pending_timer.cancelled(),
            "idle_since_epoch": self.idle_since,
            "idle_since_utc": epoch_to_utc_str(self.idle_since),
            "next_fire_at_epoch": self.next_fire_at,
            "next_fire_at_utc": epoch_to_utc_str(self.next_fire_at),
            "last_fired_at_epoch": self.last_fired_at,
        }


# ----------------- 投递结果 ----------------
@dataclass
class DeliveryResult:
    succeeded: bool
    message: Optional[str] = None  # 实际发出的提醒文本
    error: Optional[str] = None


# ----------------- 会话事件 ----------------
class SessionEventKind(str, Enum):
    IDLE = "idle"
    ACTIVITY = "activity"
    END = "end"


@dataclass
class SessionEvent:
    kind: SessionEventKind
    session_id: SessionId
    role: Optional[str] = None  # 仅 ACTIVITY 使用
    at: Optional[float] = None  # 事件发生时间 (epoch 秒), 为空时以接收时间为准
