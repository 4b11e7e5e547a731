import json

import pytest

from idle_nudge.config.messages import DEFAULT_IDLE_REMINDER_MESSAGES
from idle_nudge.config.reminder_config import (
    ConfigError,
    ReminderConfig,
    coerce_reminder_config,
    load_reminder_config,
)


def test_defaults():
    config = ReminderConfig()
    assert config.reminders_enabled is True
    assert config.initial_delay_seconds == 30.0
    assert config.max_follow_up_reminders == 3
    assert config.reminder_backoff_multiplier == 2.0
    assert config.idle_reminder_tts_messages == DEFAULT_IDLE_REMINDER_MESSAGES


def test_camel_case_keys_and_unknown_keys():
    config = coerce_reminder_config(
        {
            "enableFollowUpReminders": False,
            "maxFollowUpReminders": 1,
            "reminderBackoffMultiplier": 1.5,
            "ttsEngine": "sapi",
        }
    )
    assert config.enable_follow_up_reminders is False
    assert config.max_follow_up_reminders == 1
    assert config.reminder_backoff_multiplier == 1.5


def test_tts_delay_takes_precedence_over_idle_delay():
    assert coerce_reminder_config({"idleReminderDelaySeconds": 10}).initial_delay_seconds == 10
    assert coerce_reminder_config({"ttsReminderDelaySeconds": 5}).initial_delay_seconds == 5
    both = coerce_reminder_config({"idleReminderDelaySeconds": 10, "ttsReminderDelaySeconds": 5})
    assert both.initial_delay_seconds == 5


@pytest.mark.parametrize(
    "raw",
    [
        {"idleReminderDelaySeconds": -1},
        {"ttsReminderDelaySeconds": "soon"},
        {"reminderBackoffMultiplier": 0.5},
        {"maxFollowUpReminders": 0},
        {"idleReminderTTSMessages": ["   ", ""]},
        {"dispatchTimeoutSeconds": 0},
    ],
)
def test_invalid_values_raise_config_error(raw):
    with pytest.raises(ConfigError):
        coerce_reminder_config(raw)


def test_non_mapping_config_rejected():
    with pytest.raises(ConfigError):
        coerce_reminder_config(["enabled"])


def test_message_pools_per_attempt():
    config = coerce_reminder_config(
        {"idleReminderTTSMessages": [" first ", ""], "followUpReminderTTSMessages": ["again"]}
    )
    assert config.messages_for_attempt(0) == ["first"]
    assert config.messages_for_attempt(1) == ["again"]

    without_follow_up = coerce_reminder_config({"idleReminderTTSMessages": ["only"]})
    assert without_follow_up.messages_for_attempt(2) == ["only"]


def test_blank_commands_are_unset():
    config = coerce_reminder_config({"ttsCommand": "  ", "soundCommand": "play bell.wav"})
    assert config.tts_command is None
    assert config.sound_command == "play bell.wav"


def test_load_missing_file_uses_defaults(tmp_path):
    config = load_reminder_config(tmp_path / "missing.json")
    assert config == ReminderConfig()


def test_load_file(tmp_path):
    path = tmp_path / "idle-nudge.json"
    path.write_text(json.dumps({"idleReminderDelaySeconds": 0.1, "maxFollowUpReminders": 2}), encoding="utf-8")
    config = load_reminder_config(path)
    assert config.initial_delay_seconds == 0.1
    assert config.max_follow_up_reminders == 2


def test_load_broken_json(tmp_path):
    path = tmp_path / "idle-nudge.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_reminder_config(path)
