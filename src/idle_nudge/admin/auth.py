from __future__ import annotations

import hmac

from fastapi import HTTPException, Request

from idle_nudge.config.settings import ADMIN_AUTH_TOKEN, WEBHOOK_SHARED_SECRET
from idle_nudge.logger import logger

if not ADMIN_AUTH_TOKEN:
    logger.warning("未配置 ADMIN_AUTH_TOKEN，管理 API 将不可访问")


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip()
    token_header = request.headers.get("X-Idle-Nudge-Token", "").strip()
    return token_header or None


async def require_admin_auth(request: Request) -> dict[str, str]:
    if not ADMIN_AUTH_TOKEN:
        raise HTTPException(status_code=503, detail="ADMIN_AUTH_TOKEN 未配置")

    token = extract_token(request)
    if token and hmac.compare_digest(token, ADMIN_AUTH_TOKEN):
        return {"auth": "token", "user": "admin-token"}

    raise HTTPException(status_code=401, detail="未授权")


async def require_event_auth(request: Request) -> dict[str, str]:
    """事件接入: 配置了共享密钥时用密钥鉴权, 否则退回管理令牌"""
    if WEBHOOK_SHARED_SECRET:
        incoming = request.headers.get("X-Idle-Nudge-Webhook-Secret", "")
        if not hmac.compare_digest(incoming, WEBHOOK_SHARED_SECRET):
            raise HTTPException(status_code=401, detail="Webhook 鉴权失败")
        return {"auth": "webhook-secret", "user": "webhook"}

    return await require_admin_auth(request)
