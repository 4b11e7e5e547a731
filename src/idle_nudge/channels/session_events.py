"""会话事件源: 把插件宿主推送的事件转换为总线事件

支持两种载荷:
1. 插件宿主格式:
   {"type": "session.idle", "properties": {"sessionID": "s1"}}
   {"type": "message.updated", "properties": {"info": {"id": "m1", "role": "user", "sessionID": "s1", "time": {"created": 1700000000000}}}}
   {"type": "session.deleted", "properties": {"info": {"id": "s1"}}}
2. 扁平格式:
   {"type": "sessionIdle" | "activity" | "sessionEnd", "sessionId": "s1", "role": "user", "at": 1700000000.0}

只有操作者 (role=user) 的活动会转换为 session.activity, 助手侧的消息不会重置提醒。
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from idle_nudge.datamodel import SessionEvent, SessionEventKind
from idle_nudge.events import bus, E
from idle_nudge.logger import logger
from idle_nudge.utils import ms_to_epoch

__all__ = ["EventPayloadError", "OPERATOR_ROLES", "parse_event", "emit_event"]

OPERATOR_ROLES = frozenset({"user"})

_IDLE_TYPES = {"session.idle", "sessionIdle", "idle"}
_ACTIVITY_TYPES = {"message.updated", "activity", "session.activity"}
_END_TYPES = {"session.deleted", "session.end", "sessionEnd", "end"}

# 超过该值的时间戳视为毫秒 (约公元 5138 年的 epoch 秒)
_MAX_EPOCH_SECONDS = 1e11


class EventPayloadError(ValueError):
    """事件载荷无法解析"""


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _session_id(*candidates: Any) -> str:
    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise EventPayloadError("事件缺少 sessionID")


def _flat_at(value: Any) -> Optional[float]:
    """扁平格式的 at: epoch 秒, 数值过大时按毫秒处理"""
    if value is None:
        return None
    if isinstance(value, bool):
        raise EventPayloadError(f"非法的事件时间: {value!r}")
    try:
        at = float(value)
    except (TypeError, ValueError):
        raise EventPayloadError(f"非法的事件时间: {value!r}")
    if not math.isfinite(at) or at < 0:
        raise EventPayloadError(f"非法的事件时间: {value!r}")
    if at > _MAX_EPOCH_SECONDS:
        at /= 1000.0
    return at


def parse_event(payload: Mapping[str, Any]) -> Optional[SessionEvent]:
    """解析单条事件, 与提醒无关的事件返回 None"""
    if not isinstance(payload, Mapping):
        raise EventPayloadError("事件载荷必须为 JSON 对象")

    event_type = payload.get("type") or payload.get("event")
    if not isinstance(event_type, str):
        raise EventPayloadError("事件缺少 type")

    props = _as_mapping(payload.get("properties"))
    info = _as_mapping(props.get("info"))

    if event_type in _IDLE_TYPES:
        sid = _session_id(props.get("sessionID"), payload.get("sessionId"), payload.get("session_id"))
        return SessionEvent(SessionEventKind.IDLE, sid, at=_flat_at(payload.get("at")))

    if event_type in _ACTIVITY_TYPES:
        sid = _session_id(info.get("sessionID"), props.get("sessionID"), payload.get("sessionId"), payload.get("session_id"))
        role = info.get("role") or payload.get("role")
        if role not in OPERATOR_ROLES:
            logger.trace(f"忽略非操作者活动: session={sid}, role={role}")
            return None

        at = _flat_at(payload.get("at"))
        if at is None:
            at = ms_to_epoch(_as_mapping(info.get("time")).get("created"))
        return SessionEvent(SessionEventKind.ACTIVITY, sid, role=role, at=at)

    if event_type in _END_TYPES:
        sid = _session_id(info.get("id"), props.get("sessionID"), payload.get("sessionId"), payload.get("session_id"))
        return SessionEvent(SessionEventKind.END, sid)

    logger.trace(f"忽略无关事件: type={event_type}")
    return None


def emit_event(event: SessionEvent) -> None:
    if event.kind is SessionEventKind.IDLE:
        bus.emit(E.SESSION_IDLE, session_id=event.session_id)
    elif event.kind is SessionEventKind.ACTIVITY:
        bus.emit(E.SESSION_ACTIVITY, session_id=event.session_id, role=event.role or "user", at=event.at)
    else:
        bus.emit(E.SESSION_END, session_id=event.session_id)
    logger.trace(f"事件已发布: kind={event.kind.value}, session={event.session_id}")
