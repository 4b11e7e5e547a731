import asyncio

import pytest

from idle_nudge.channels.session_events import EventPayloadError, emit_event, parse_event
from idle_nudge.core.scheduler import configure_scheduler
from idle_nudge.datamodel import ReminderStatus, SessionEvent, SessionEventKind
from idle_nudge.utils import now_epoch


def test_parse_plugin_host_idle():
    event = parse_event({"type": "session.idle", "properties": {"sessionID": "s1"}})
    assert event == SessionEvent(SessionEventKind.IDLE, "s1")


def test_parse_user_message_as_activity_with_timestamp():
    event = parse_event(
        {
            "type": "message.updated",
            "properties": {"info": {"id": "m1", "role": "user", "sessionID": "s1", "time": {"created": 1700000000000}}},
        }
    )
    assert event.kind is SessionEventKind.ACTIVITY
    assert event.session_id == "s1"
    assert event.role == "user"
    assert event.at == pytest.approx(1700000000.0)


def test_assistant_message_is_not_activity():
    payload = {"type": "message.updated", "properties": {"info": {"id": "m2", "role": "assistant", "sessionID": "s1"}}}
    assert parse_event(payload) is None


def test_parse_session_deleted():
    event = parse_event({"type": "session.deleted", "properties": {"info": {"id": "s1"}}})
    assert event == SessionEvent(SessionEventKind.END, "s1")


def test_parse_flat_shape():
    assert parse_event({"type": "sessionIdle", "sessionId": "s1", "at": 12.5}) == SessionEvent(
        SessionEventKind.IDLE, "s1", at=12.5
    )
    assert parse_event({"type": "activity", "sessionId": "s1", "role": "user"}).kind is SessionEventKind.ACTIVITY
    assert parse_event({"type": "sessionEnd", "sessionId": "s1"}).kind is SessionEventKind.END


def test_flat_millisecond_timestamps_are_converted():
    event = parse_event({"type": "activity", "sessionId": "s1", "role": "user", "at": 1700000000123})
    assert event.at == pytest.approx(1700000000.123)


def test_non_finite_plugin_host_time_is_dropped():
    event = parse_event(
        {"type": "message.updated", "properties": {"info": {"role": "user", "sessionID": "s1", "time": {"created": float("inf")}}}}
    )
    assert event.at is None


def test_unrelated_event_ignored():
    assert parse_event({"type": "file.edited", "properties": {"file": "a.py"}}) is None


@pytest.mark.parametrize(
    "payload",
    [
        ["session.idle"],
        {"properties": {"sessionID": "s1"}},
        {"type": "session.idle", "properties": {}},
        {"type": "sessionIdle", "sessionId": "s1", "at": "yesterday"},
        {"type": "sessionIdle", "sessionId": "s1", "at": float("inf")},
        {"type": "sessionIdle", "sessionId": "s1", "at": float("nan")},
        {"type": "activity", "sessionId": "s1", "role": "user", "at": -5},
        {"type": "activity", "sessionId": "s1", "role": "user", "at": True},
    ],
)
def test_malformed_payloads(payload):
    with pytest.raises(EventPayloadError):
        parse_event(payload)


@pytest.mark.asyncio
async def test_emitted_events_reach_scheduler(make_scheduler, metrics):
    scheduler = make_scheduler(idleReminderDelaySeconds=5)
    configure_scheduler(scheduler)
    try:
        emit_event(SessionEvent(SessionEventKind.IDLE, "s1"))
        await asyncio.sleep(0.02)
        assert scheduler.get_session("s1").status is ReminderStatus.SCHEDULED

        emit_event(SessionEvent(SessionEventKind.ACTIVITY, "s1", role="user"))
        await asyncio.sleep(0.02)
        assert scheduler.get_session("s1").status is ReminderStatus.CANCELLED

        emit_event(SessionEvent(SessionEventKind.END, "s1"))
        await asyncio.sleep(0.02)
        assert scheduler.get_session("s1") is None
        assert metrics.event_in_count == 3
    finally:
        configure_scheduler(None)
        await scheduler.shutdown()


@pytest.mark.asyncio
async def test_events_for_one_session_apply_in_order(make_scheduler):
    scheduler = make_scheduler(idleReminderDelaySeconds=5)
    configure_scheduler(scheduler)
    try:
        emit_event(SessionEvent(SessionEventKind.IDLE, "s1"))
        emit_event(SessionEvent(SessionEventKind.ACTIVITY, "s1", role="user"))
        emit_event(SessionEvent(SessionEventKind.IDLE, "s1"))
        await asyncio.sleep(0.02)

        state = scheduler.get_session("s1")
        assert state.status is ReminderStatus.SCHEDULED
        assert state.generation == 3
    finally:
        configure_scheduler(None)
        await scheduler.shutdown()


@pytest.mark.asyncio
async def test_millisecond_idle_does_not_hide_later_operator_reply(make_scheduler, dispatcher):
    scheduler = make_scheduler(idleReminderDelaySeconds=0.1, maxFollowUpReminders=1)
    configure_scheduler(scheduler)
    try:
        emit_event(parse_event({"type": "sessionIdle", "sessionId": "s1", "at": now_epoch() * 1000}))
        await asyncio.sleep(0.02)

        reply = parse_event(
            {
                "type": "message.updated",
                "properties": {"info": {"role": "user", "sessionID": "s1", "time": {"created": now_epoch() * 1000}}},
            }
        )
        emit_event(reply)
        await asyncio.sleep(0.2)

        assert scheduler.get_session("s1").status is ReminderStatus.CANCELLED
        assert dispatcher.calls == []
    finally:
        configure_scheduler(None)
        await scheduler.shutdown()
