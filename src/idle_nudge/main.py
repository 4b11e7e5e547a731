from idle_nudge.logger import setup_logging, logger
from idle_nudge.config.settings import *

import asyncio
import signal
import sys

from idle_nudge.admin.http_server import main_loop as admin_http_main
from idle_nudge.config.reminder_config import ConfigError, load_reminder_config
from idle_nudge.core.scheduler import ReminderScheduler, configure_scheduler
from idle_nudge.dispatch import CommandDispatcher

shutdown_event = asyncio.Event()


def signal_handler(sig, frame):
    """处理 SIGINT (Ctrl+C) / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()


async def main() -> int:
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        config = load_reminder_config(REMINDER_CONFIG_FILE)
        scheduler = ReminderScheduler(config, CommandDispatcher(config))
    except ConfigError as e:
        logger.critical(f"提醒配置错误, 无法启动: {e}")
        return 1

    configure_scheduler(scheduler)
    try:
        await asyncio.gather(
            scheduler.run_loop(shutdown_event),
            admin_http_main(shutdown_event),
        )
    finally:
        configure_scheduler(None)
        logger.info("idle-nudge 已关闭")
    return 0


def run() -> None:
    setup_logging(
        log_level=LOG_LEVEL,
        log_file=LOG_FILE,
        console_level=CONSOLE_LOG_LEVEL,
    )
    logger.info("启动 idle-nudge...")
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
