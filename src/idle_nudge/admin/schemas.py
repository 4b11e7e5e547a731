from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic import BaseModel, Field


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float


class ShutdownRequest(BaseModel):
    reason: str = Field(default="manual")


class EventAccepted(BaseModel):
    ok: bool = True
    accepted: bool
    kind: str | None = None
    session_id: str | None = None
