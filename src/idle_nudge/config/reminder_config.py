"""提醒配置

配置文件为 JSON, 键名沿用插件宿主的 camelCase 写法, 例如:

    {
        "enabled": true,
        "idleReminderDelaySeconds": 30,
        "enableFollowUpReminders": true,
        "maxFollowUpReminders": 3,
        "reminderBackoffMultiplier": 2,
        "ttsCommand": "espeak {message}"
    }

所有校验都在加载或构造调度器时完成, 运行中的提醒链不会再遇到配置错误。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from idle_nudge.config.messages import DEFAULT_IDLE_REMINDER_MESSAGES
from idle_nudge.logger import logger

__all__ = ["ConfigError", "ReminderConfig", "load_reminder_config", "coerce_reminder_config"]

DEFAULT_INITIAL_DELAY_SECONDS = 30.0


class ConfigError(ValueError):
    """配置缺失或非法"""


class ReminderConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    enabled: bool = True
    enable_tts_reminder: bool = Field(default=True, alias="enableTTSReminder")
    enable_sound: bool = Field(default=True, alias="enableSound")

    idle_reminder_delay_seconds: Optional[float] = Field(
        default=None, alias="idleReminderDelaySeconds", ge=0, allow_inf_nan=False
    )
    tts_reminder_delay_seconds: Optional[float] = Field(
        default=None, alias="ttsReminderDelaySeconds", ge=0, allow_inf_nan=False
    )

    enable_follow_up_reminders: bool = Field(default=True, alias="enableFollowUpReminders")
    # 总预算, 首次提醒也占用一次
    max_follow_up_reminders: int = Field(default=3, alias="maxFollowUpReminders", ge=1)
    reminder_backoff_multiplier: float = Field(
        default=2.0, alias="reminderBackoffMultiplier", ge=1.0, allow_inf_nan=False
    )

    idle_reminder_tts_messages: List[str] = Field(
        default_factory=lambda: list(DEFAULT_IDLE_REMINDER_MESSAGES),
        alias="idleReminderTTSMessages",
    )
    follow_up_reminder_tts_messages: Optional[List[str]] = Field(
        default=None, alias="followUpReminderTTSMessages"
    )

    # 默认投递器使用的命令模板, 支持 {message} {session} {attempt} 占位符
    tts_command: Optional[str] = Field(default=None, alias="ttsCommand")
    sound_command: Optional[str] = Field(default=None, alias="soundCommand")
    dispatch_timeout_seconds: float = Field(
        default=30.0, alias="dispatchTimeoutSeconds", gt=0, allow_inf_nan=False
    )

    @field_validator("idle_reminder_tts_messages")
    @classmethod
    def _check_idle_messages(cls, v: List[str]) -> List[str]:
        cleaned = [m.strip() for m in v if m and m.strip()]
        if not cleaned:
            raise ValueError("idleReminderTTSMessages 不能为空")
        return cleaned

    @field_validator("follow_up_reminder_tts_messages")
    @classmethod
    def _check_follow_up_messages(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        cleaned = [m.strip() for m in v if m and m.strip()]
        return cleaned or None

    @field_validator("tts_command", "sound_command")
    @classmethod
    def _blank_command_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @model_validator(mode="after")
    def _warn_conflicting_delays(self) -> "ReminderConfig":
        idle, tts = self.idle_reminder_delay_seconds, self.tts_reminder_delay_seconds
        if idle is not None and tts is not None and idle != tts:
            logger.warning(
                f"idleReminderDelaySeconds={idle} 与 ttsReminderDelaySeconds={tts} 不一致, "
                f"以 ttsReminderDelaySeconds 为准"
            )
        return self

    @property
    def initial_delay_seconds(self) -> float:
        """两个延迟配置视为同一个初始延迟, ttsReminderDelaySeconds 优先"""
        if self.tts_reminder_delay_seconds is not None:
            return self.tts_reminder_delay_seconds
        if self.idle_reminder_delay_seconds is not None:
            return self.idle_reminder_delay_seconds
        return DEFAULT_INITIAL_DELAY_SECONDS

    @property
    def reminders_enabled(self) -> bool:
        return self.enabled and (self.enable_tts_reminder or self.enable_sound)

    def messages_for_attempt(self, attempt_index: int) -> List[str]:
        if attempt_index > 0 and self.follow_up_reminder_tts_messages:
            return list(self.follow_up_reminder_tts_messages)
        return list(self.idle_reminder_tts_messages)


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def coerce_reminder_config(config: Union[ReminderConfig, Mapping[str, Any], None]) -> ReminderConfig:
    if isinstance(config, ReminderConfig):
        return config
    if config is None:
        return ReminderConfig()
    if not isinstance(config, Mapping):
        raise ConfigError(f"提醒配置必须是对象, 实际为 {type(config).__name__}")
    try:
        return ReminderConfig.model_validate(dict(config))
    except ValidationError as e:
        raise ConfigError(f"提醒配置非法: {_format_validation_error(e)}") from e


def load_reminder_config(path: Union[str, Path]) -> ReminderConfig:
    path = Path(path)
    if not path.exists():
        logger.warning(f"未找到提醒配置文件 {path}, 使用默认配置")
        return ReminderConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"提醒配置文件 {path} 不是合法的 JSON: {e}") from e

    config = coerce_reminder_config(raw)
    logger.info(
        f"已加载提醒配置: file={path}, enabled={config.reminders_enabled}, "
        f"initial_delay={config.initial_delay_seconds}s, max={config.max_follow_up_reminders}, "
        f"multiplier={config.reminder_backoff_multiplier}"
    )
    return config
