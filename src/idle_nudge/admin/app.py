from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

from idle_nudge.channels.session_events import EventPayloadError, emit_event, parse_event
from idle_nudge.core.scheduler import require_scheduler
from idle_nudge.logger import logger
from idle_nudge.utils import epoch_to_utc_str

from .auth import require_admin_auth, require_event_auth
from .schemas import EventAccepted, RuntimeControl, ShutdownRequest


def _scheduler_status() -> dict[str, Any]:
    try:
        return {"configured": True, **require_scheduler().get_status()}
    except RuntimeError:
        return {"configured": False}


def create_app(control: RuntimeControl) -> FastAPI:
    app = FastAPI(title="idle-nudge Admin API", version="0.1.0")

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": epoch_to_utc_str(time.time()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "scheduler": _scheduler_status(),
            "shutdown_requested": control.shutdown_event.is_set(),
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    @app.post("/api/v1/events", response_model=EventAccepted)
    async def ingest_event(request: Request) -> EventAccepted:
        await require_event_auth(request)

        try:
            payload = await request.json()
        except Exception:
            raise HTTPException(status_code=400, detail="事件载荷必须为 JSON")

        try:
            event = parse_event(payload)
        except EventPayloadError as e:
            logger.warning(f"收到无法解析的事件: {e}")
            raise HTTPException(status_code=400, detail=str(e))

        if event is None:
            return EventAccepted(accepted=False)

        emit_event(event)
        return EventAccepted(accepted=True, kind=event.kind.value, session_id=event.session_id)

    @app.get("/api/v1/sessions")
    async def list_sessions(request: Request, status: str | None = None) -> dict[str, Any]:
        await require_admin_auth(request)
        items = require_scheduler().snapshot()
        if status:
            items = [item for item in items if item["status"] == status]
        return {"items": items, "total": len(items), "status": status}

    @app.get("/api/v1/sessions/{session_id}")
    async def get_session(session_id: str, request: Request) -> dict[str, Any]:
        await require_admin_auth(request)
        state = require_scheduler().get_session(session_id)
        if state is None:
            raise HTTPException(status_code=404, detail=f"会话不存在: {session_id}")
        return state.snapshot()

    @app.get("/api/v1/metrics")
    async def get_metrics(request: Request) -> dict[str, Any]:
        await require_admin_auth(request)
        scheduler_status = _scheduler_status()
        runtime: dict[str, Any] = {}
        if scheduler_status["configured"]:
            runtime = require_scheduler().metrics.snapshot()
        return {
            "runtime": runtime,
            "components": {"scheduler": scheduler_status},
            "active_tasks": len(asyncio.all_tasks()),
        }

    @app.post("/api/v1/admin/shutdown")
    async def admin_shutdown(payload: ShutdownRequest, request: Request) -> dict[str, Any]:
        auth_info = await require_admin_auth(request)
        logger.warning(f"收到远程关闭请求: by={auth_info['user']}, reason={payload.reason}")
        control.shutdown_event.set()
        return {"ok": True, "action": "shutdown", "reason": payload.reason}

    return app
