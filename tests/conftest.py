"""Shared fixtures for oncall-notifier tests."""

import pytest

_ENV_VARS = [
    "PD_API_TOKEN",
    "PD_SCHEDULE_ID",
    "PD_USER_ID",
    "NOTIFICATION_BACKEND",
    "NOTIFICATION_WEBHOOK_URL",
    "NTFY_SERVER_URL",
    "NTFY_TOPIC",
    "NTFY_API_KEY",
    "PUSHOVER_APP_TOKEN",
    "PUSHOVER_USER_KEY",
    "PUSHOVER_DEVICE",
    "PUSHOVER_SOUND",
    "CHECK_INTERVAL",
    "ADVANCE_NOTIFICATION_TIME",
    "NOTIFY_SHIFT_ENDED",
    "LOOKAHEAD_DAYS",
    "HTTP_TIMEOUT",
    "STATE_FILE_PATH",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep the developer's environment and .env file out of Settings."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
