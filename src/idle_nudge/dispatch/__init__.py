from idle_nudge.dispatch.base import NotificationDispatcher
from idle_nudge.dispatch.command_dispatcher import CommandDispatcher

__all__ = ["NotificationDispatcher", "CommandDispatcher"]
