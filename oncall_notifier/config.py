"""Configuration management for oncall-notifier."""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|h|m|s)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,  # U+00B5 micro sign
    "μs": 1e-6,  # U+03BC greek mu
    "ms": 1e-3,
    "s": 1,
    "m": 60,
    "h": 3600,
}


def parse_duration(value: str) -> timedelta:
    """Parse a Go-style duration string such as ``2h``, ``30m``, ``1h30m``
    or ``2h45m30.5s``.

    Every number needs a unit (``ns``, ``us``, ``ms``, ``s``, ``m``, ``h``);
    only ``0`` may be given bare.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    negative = text.startswith("-")
    body = text[1:] if text[:1] in "+-" else text
    if body == "0":
        return timedelta(0)

    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(body):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(body):
        raise ValueError(f"invalid duration: {value!r} (e.g. '2h', '30m', '1h30m')")
    return timedelta(seconds=-seconds if negative else seconds)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # PagerDuty API
    pd_api_token: str
    pd_schedule_id: str
    pd_user_id: str

    # Notification backend
    notification_backend: Literal["webhook", "ntfy", "pushover"]
    notification_webhook_url: str = ""
    ntfy_server_url: str = ""
    ntfy_topic: str = ""
    ntfy_api_key: str = ""
    pushover_app_token: str = ""
    pushover_user_key: str = ""
    pushover_device: str = ""
    pushover_sound: str = ""

    # Scheduler
    check_interval: int = Field(default=300, gt=0)  # seconds between polls
    advance_notification_time: timedelta = timedelta(0)  # 0 disables
    notify_shift_ended: bool = False
    lookahead_days: int = Field(default=7, gt=0)
    http_timeout: float = Field(default=30.0, gt=0)

    # State
    state_file_path: str = "/data/state.json"

    # Logging
    log_level: str = "INFO"

    @field_validator("advance_notification_time", mode="before")
    @classmethod
    def _parse_advance_time(cls, value):
        if value is None or value == "":
            return timedelta(0)
        if isinstance(value, str):
            parsed = parse_duration(value)
        elif isinstance(value, (int, float)):
            parsed = timedelta(seconds=value)
        else:
            parsed = value
        if parsed <= timedelta(0):
            raise ValueError("ADVANCE_NOTIFICATION_TIME must be greater than 0")
        return parsed

    @model_validator(mode="after")
    def _check_backend_settings(self) -> Settings:
        required = {
            "webhook": ("notification_webhook_url",),
            "ntfy": ("ntfy_server_url", "ntfy_topic"),
            "pushover": ("pushover_app_token", "pushover_user_key"),
        }[self.notification_backend]
        missing = [name.upper() for name in required if not getattr(self, name)]
        if missing:
            raise ValueError(
                f"{', '.join(missing)} required when using "
                f"{self.notification_backend} backend"
            )
        return self

    @property
    def advance_notifications_enabled(self) -> bool:
        return self.advance_notification_time > timedelta(0)
