"""退避计算与提醒文案选择, 均为无状态纯函数"""

from __future__ import annotations

import random
from typing import Sequence

__all__ = ["reminder_delay", "should_schedule_follow_up", "select_message", "render_message"]


def reminder_delay(attempt_index: int, initial_delay_seconds: float, multiplier: float) -> float:
    """第 attempt_index 次提醒距上一次触发 (或进入空闲) 的延迟

    delay(0) = initial
    delay(k) = initial * multiplier ** k
    """
    if attempt_index < 0:
        raise ValueError(f"attempt_index 不能为负数: {attempt_index}")
    if attempt_index == 0:
        return initial_delay_seconds
    return initial_delay_seconds * (multiplier ** attempt_index)


def should_schedule_follow_up(attempt_count: int, max_reminders: int, follow_ups_enabled: bool) -> bool:
    if not follow_ups_enabled:
        return False
    return attempt_count < max_reminders


def select_message(candidates: Sequence[str], rng: random.Random | None = None) -> str:
    if not candidates:
        raise ValueError("候选提醒文案为空")
    return (rng or random).choice(list(candidates))


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_message(template: str, **values) -> str:
    # 未知占位符原样保留, 文案里的花括号不会导致投递失败
    try:
        return template.format_map(_KeepMissing(values))
    except (ValueError, IndexError, KeyError, AttributeError):
        return template
