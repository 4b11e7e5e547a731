import os
from dotenv import load_dotenv
from idle_nudge.logger import logger
load_dotenv()

__all__ = [
    "REMINDER_CONFIG_FILE",
    "LOG_FILE", "LOG_LEVEL", "CONSOLE_LOG_LEVEL",
    "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT", "ADMIN_AUTH_TOKEN",
    "WEBHOOK_SHARED_SECRET",
]

_ALLOWED_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "FATAL")


def _parse_level(name: str, default: str) -> str:
    raw = os.getenv(name, default).strip().upper()
    if raw not in _ALLOWED_LOG_LEVELS:
        logger.warning(f"{name} 非法: {raw}, 已回退到 {default}")
        return default
    return raw


# 提醒配置文件 (JSON)
REMINDER_CONFIG_FILE = os.getenv("REMINDER_CONFIG_FILE", "config/idle-nudge.json")

# 日志
LOG_FILE = os.getenv("LOG_FILE", "logs/idle-nudge.log")
LOG_LEVEL = _parse_level("LOG_LEVEL", "DEBUG")
CONSOLE_LOG_LEVEL = _parse_level("CONSOLE_LOG_LEVEL", "INFO")


# Admin API / 事件接入
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
try:
    ADMIN_HTTP_PORT = int(os.getenv("ADMIN_HTTP_PORT", "18080"))
except ValueError:
    ADMIN_HTTP_PORT = 18080
    logger.warning("ADMIN_HTTP_PORT 非法, 已回退到 18080")

ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")

# 设置后事件接入改用共享密钥鉴权, 便于插件宿主直接推送
WEBHOOK_SHARED_SECRET = os.getenv("WEBHOOK_SHARED_SECRET", "")
