"""Data models for oncall-notifier."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class NotificationEvent(str, Enum):
    """Kinds of events the notifier can raise."""

    SHIFT_STARTED = "shift_started"
    SHIFT_ENDED = "shift_ended"
    UPCOMING_SHIFT = "upcoming_shift"


@dataclass
class PersistedState:
    """On-call state carried between poll cycles and process restarts."""

    was_on_call: bool = False
    last_advance_notification_sent: datetime | None = None

    def to_dict(self) -> dict:
        """Serialize to the on-disk layout, omitting absent optional fields."""
        data: dict = {"was_on_call": self.was_on_call}
        if self.last_advance_notification_sent is not None:
            data["last_advance_notification_sent"] = _format_timestamp(
                self.last_advance_notification_sent
            )
        return data

    @classmethod
    def from_dict(cls, data: dict) -> PersistedState:
        """Build state from the on-disk layout.

        Raises:
            ValueError: If a field has the wrong type or an unparsable timestamp.
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")

        was_on_call = data.get("was_on_call", False)
        if not isinstance(was_on_call, bool):
            raise ValueError(f"was_on_call must be a boolean, got {was_on_call!r}")

        last_sent = None
        raw = data.get("last_advance_notification_sent")
        if raw is not None:
            if not isinstance(raw, str):
                raise ValueError(
                    f"last_advance_notification_sent must be a string, got {raw!r}"
                )
            last_sent = parse_timestamp(raw)

        return cls(was_on_call=was_on_call, last_advance_notification_sent=last_sent)


@dataclass(frozen=True)
class UpcomingShift:
    """The nearest future shift for the monitored user."""

    start_time: datetime
    end_time: datetime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 / RFC3339 timestamp into an aware UTC datetime."""
    # fromisoformat only accepts a trailing "Z" from 3.11 on
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
