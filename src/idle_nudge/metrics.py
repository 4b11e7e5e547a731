"""
一个简单的运行时指标收集类，用于统计会话事件、提醒触发与投递结果等信息，方便后续扩展和监控。
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class RuntimeMetrics:
    event_in_count: int = 0
    episode_started_count: int = 0
    episode_cancelled_count: int = 0
    episode_exhausted_count: int = 0
    reminder_fired_count: int = 0
    reminder_delivered_count: int = 0
    reminder_failed_count: int = 0
    stale_timer_count: int = 0
    last_reminder_at: float | None = None

    def record_event_in(self) -> None:
        self.event_in_count += 1

    def record_episode_started(self) -> None:
        self.episode_started_count += 1

    def record_episode_cancelled(self) -> None:
        self.episode_cancelled_count += 1

    def record_episode_exhausted(self) -> None:
        self.episode_exhausted_count += 1

    def record_reminder(self, succeeded: bool) -> None:
        self.reminder_fired_count += 1
        self.last_reminder_at = time.time()
        if succeeded:
            self.reminder_delivered_count += 1
        else:
            self.reminder_failed_count += 1

    def record_stale_timer(self) -> None:
        self.stale_timer_count += 1

    def snapshot(self) -> dict:
        return {
            "event_in_count": self.event_in_count,
            "episode_started_count": self.episode_started_count,
            "episode_cancelled_count": self.episode_cancelled_count,
            "episode_exhausted_count": self.episode_exhausted_count,
            "reminder_fired_count": self.reminder_fired_count,
            "reminder_delivered_count": self.reminder_delivered_count,
            "reminder_failed_count": self.reminder_failed_count,
            "stale_timer_count": self.stale_timer_count,
            "last_reminder_at_epoch": self.last_reminder_at,
            "last_reminder_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_reminder_at))
                if self.last_reminder_at is not None
                else None
            ),
        }


runtime_metrics = RuntimeMetrics()


__all__ = ["RuntimeMetrics", "runtime_metrics"]
