import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import pytest

from idle_nudge.core.scheduler import ReminderScheduler
from idle_nudge.datamodel import DeliveryResult
from idle_nudge.dispatch.base import NotificationDispatcher
from idle_nudge.metrics import RuntimeMetrics


@dataclass
class DeliveryCall:
    session_id: str
    attempt_index: int
    candidates: List[str]
    at: float  # loop.time()


@dataclass
class RecordingDispatcher(NotificationDispatcher):
    """Records every delivery; can be told to be slow, fail, or raise."""

    delay: float = 0.0
    fail: bool = False
    error: Optional[BaseException] = None
    calls: List[DeliveryCall] = field(default_factory=list)

    async def deliver_reminder(
        self,
        session_id: str,
        attempt_index: int,
        candidate_messages: Sequence[str],
    ) -> DeliveryResult:
        self.calls.append(
            DeliveryCall(session_id, attempt_index, list(candidate_messages), asyncio.get_running_loop().time())
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.fail:
            return DeliveryResult(succeeded=False, error="speaker unplugged")
        return DeliveryResult(succeeded=True, message=candidate_messages[0])

    def for_session(self, session_id: str) -> List[DeliveryCall]:
        return [c for c in self.calls if c.session_id == session_id]


def make_config(**overrides) -> dict:
    config = {
        "enabled": True,
        "enableTTSReminder": True,
        "enableSound": True,
        "idleReminderDelaySeconds": 0.1,
        "enableFollowUpReminders": True,
        "maxFollowUpReminders": 2,
        "reminderBackoffMultiplier": 2,
    }
    config.update(overrides)
    return config


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def metrics():
    return RuntimeMetrics()


@pytest.fixture
def make_scheduler(dispatcher, metrics):
    def _make(dispatcher_override=None, **config_overrides) -> ReminderScheduler:
        return ReminderScheduler(
            make_config(**config_overrides),
            dispatcher_override or dispatcher,
            metrics=metrics,
        )

    return _make
