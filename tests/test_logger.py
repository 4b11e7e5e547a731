import sys

import pytest

from idle_nudge.logger import error_log_path, logger, normalize_level, setup_logging


@pytest.fixture
def log_file(tmp_path):
    path = tmp_path / "logs" / "idle-nudge.log"
    setup_logging("DEBUG", path, console_level="CRITICAL")
    yield path
    logger.remove()
    logger.add(sys.stderr)


def test_records_carry_session_field(log_file):
    with logger.contextualize(session="s1"):
        logger.info("触发提醒 1/3")
    logger.error("调度器异常")
    logger.remove()

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert "session=s1" in lines[0] and "触发提醒 1/3" in lines[0]
    assert "session=-" in lines[1]

    errors = error_log_path(log_file).read_text(encoding="utf-8").splitlines()
    assert len(errors) == 1
    assert "调度器异常" in errors[0]


def test_error_log_sits_beside_main_log(tmp_path):
    assert error_log_path(tmp_path / "idle-nudge.log") == tmp_path / "idle-nudge_error.log"


def test_fatal_is_critical():
    assert normalize_level("fatal") == "CRITICAL"
    assert normalize_level("info") == "INFO"
