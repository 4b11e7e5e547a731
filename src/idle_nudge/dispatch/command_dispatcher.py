"""默认投递器: 执行用户配置的命令模板来播报或播放提示音

命令模板先按 shell 规则拆分为 argv, 再逐个参数替换占位符,
因此提醒文案里的空格和引号不会破坏参数边界。不经过 shell 执行。
"""

from __future__ import annotations

import asyncio
import random
import shlex
from typing import List, Sequence, Tuple

from idle_nudge.config.reminder_config import ReminderConfig
from idle_nudge.core.backoff import render_message, select_message
from idle_nudge.datamodel import DeliveryResult, SessionId
from idle_nudge.dispatch.base import NotificationDispatcher
from idle_nudge.logger import logger

__all__ = ["CommandDispatcher", "build_argv"]


def build_argv(template: str, **values: str) -> List[str]:
    argv = shlex.split(template)
    rendered = []
    for arg in argv:
        for key, value in values.items():
            arg = arg.replace("{" + key + "}", value)
        rendered.append(arg)
    return rendered


class CommandDispatcher(NotificationDispatcher):
    def __init__(self, config: ReminderConfig, rng: random.Random | None = None) -> None:
        self.config = config
        self._rng = rng or random.Random()

    def _steps(self) -> List[Tuple[str, str]]:
        steps: List[Tuple[str, str]] = []
        if self.config.enable_sound and self.config.sound_command:
            steps.append(("sound", self.config.sound_command))
        if self.config.enable_tts_reminder and self.config.tts_command:
            steps.append(("tts", self.config.tts_command))
        return steps

    async def deliver_reminder(
        self,
        session_id: SessionId,
        attempt_index: int,
        candidate_messages: Sequence[str],
    ) -> DeliveryResult:
        attempt = str(attempt_index + 1)
        message = render_message(
            select_message(candidate_messages, self._rng),
            session=session_id,
            attempt=attempt,
        )

        steps = self._steps()
        if not steps:
            logger.info(f"[提醒 {attempt}] {message}")
            return DeliveryResult(succeeded=True, message=message)

        errors: List[str] = []
        ok_count = 0
        for name, template in steps:
            argv = build_argv(template, message=message, session=session_id, attempt=attempt)
            error = await self._run(name, argv)
            if error is None:
                ok_count += 1
            else:
                errors.append(f"{name}: {error}")

        if ok_count == 0:
            return DeliveryResult(succeeded=False, message=message, error="; ".join(errors))
        if errors:
            logger.warning(f"提醒部分投递失败: attempt={attempt}, errors={errors}")
        return DeliveryResult(succeeded=True, message=message)

    async def _run(self, name: str, argv: List[str]) -> str | None:
        """执行单条命令, 成功返回 None, 失败返回错误描述"""
        if not argv:
            return "命令为空"

        timeout = self.config.dispatch_timeout_seconds
        logger.trace(f"执行{name}命令: argv={argv}, timeout={timeout}s")
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning(f"{name}命令无法启动: {argv[0]}, error={e}")
            return str(e)

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"{name}命令超时 ({timeout}s), 已终止: {argv[0]}")
            return f"超时 {timeout}s"
        except asyncio.CancelledError:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            raise

        if proc.returncode != 0:
            detail = (stderr or b"").decode("utf-8", errors="replace").strip()
            logger.warning(f"{name}命令退出码 {proc.returncode}: {argv[0]} {detail}")
            return f"退出码 {proc.returncode}"
        return None
