"""日志模块

级别支持: TRACE/DEBUG/INFO/WARNING/ERROR/CRITICAL (兼容别名 FATAL -> CRITICAL)

每条日志带 session 字段, 调度器在处理某个会话时用 logger.contextualize(session=...) 绑定,
会话无关的日志显示为 "-"。
入口处调用 setup_logging, 其余模块直接 `from idle_nudge.logger import logger`。
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Literal, Union

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "FATAL"]

NO_SESSION = "-"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> "
    "<level>{level:<8}</level> "
    "<magenta>[{extra[session]}]</magenta> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | session={extra[session]} | "
    "{name}:{function}:{line} - {message}"
)


def normalize_level(level: Union[str, LogLevel]) -> str:
    lv = str(level).upper()
    return "CRITICAL" if lv == "FATAL" else lv


def error_log_path(log_file: Union[str, Path]) -> Path:
    """错误日志与主日志同目录, 文件名追加 _error 后缀"""
    log_file = Path(log_file)
    return log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")


def setup_logging(
    log_level: LogLevel,
    log_file: Union[str, Path],
    console_level: LogLevel = "INFO",
) -> None:
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    rotating = {"format": FILE_FORMAT, "rotation": "10 MB", "compression": "zip", "encoding": "utf-8"}
    logger.configure(
        handlers=[
            {
                "sink": sys.stderr,
                "level": normalize_level(console_level),
                "format": CONSOLE_FORMAT,
                "colorize": True,
            },
            {"sink": log_file, "level": normalize_level(log_level), "retention": "30 days", **rotating},
            {"sink": error_log_path(log_file), "level": "ERROR", "retention": "90 days", **rotating},
        ],
        extra={"session": NO_SESSION},
    )


__all__ = ["setup_logging", "logger", "normalize_level", "error_log_path", "NO_SESSION"]
