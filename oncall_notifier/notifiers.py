"""Notification backends for oncall-notifier."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

import httpx
import structlog

from oncall_notifier.config import Settings
from oncall_notifier.models import NotificationEvent, utc_now

logger = structlog.get_logger()

PUSHOVER_API_URL = "https://api.pushover.net/1/messages.json"


class DeliveryError(Exception):
    """Raised when a notification could not be delivered."""


class Urgency(str, Enum):
    URGENT = "urgent"
    DEFAULT = "default"
    LOW = "low"


@dataclass(frozen=True)
class FormattedEvent:
    """Backend-independent rendering of a notification event."""

    title: str
    message: str
    urgency: Urgency


def format_time_until(delta: timedelta) -> str:
    """Render a countdown like ``2 hours and 5 minutes``; empty when under a minute."""
    total_minutes = max(int(delta.total_seconds() // 60), 0)
    hours, minutes = divmod(total_minutes, 60)
    if hours and minutes:
        return f"{hours} hours and {minutes} minutes"
    if hours:
        return f"{hours} hours"
    if minutes:
        return f"{minutes} minutes"
    return ""


def format_event(
    event: NotificationEvent, timestamp: datetime, now: datetime | None = None
) -> FormattedEvent:
    """Build the title, message and urgency shared by every backend."""
    if event == NotificationEvent.SHIFT_STARTED:
        return FormattedEvent(
            title="PagerDuty On-Call Shift Started",
            message="🚨 Your PagerDuty on-call shift has started!",
            urgency=Urgency.URGENT,
        )
    if event == NotificationEvent.UPCOMING_SHIFT:
        countdown = format_time_until(timestamp - (now or utc_now()))
        if countdown:
            message = f"⏰ Your PagerDuty on-call shift starts in {countdown}!"
        else:
            message = "⏰ Your PagerDuty on-call shift starts soon!"
        return FormattedEvent(
            title="PagerDuty On-Call Shift Upcoming",
            message=message,
            urgency=Urgency.DEFAULT,
        )
    if event == NotificationEvent.SHIFT_ENDED:
        return FormattedEvent(
            title="PagerDuty On-Call Shift Ended",
            message="✅ Your PagerDuty on-call shift has ended. Enjoy the downtime!",
            urgency=Urgency.DEFAULT,
        )
    raise ValueError(f"Unknown notification event: {event!r}")


class Notifier(ABC):
    """A notification backend.

    Subclasses implement transport only; message text comes from
    :func:`format_event`.
    """

    name = "notifier"

    def __init__(self, timeout: float = 30.0, transport: httpx.BaseTransport | None = None) -> None:
        self._client = httpx.Client(timeout=timeout, transport=transport)

    @abstractmethod
    def notify(self, event: NotificationEvent, timestamp: datetime) -> None:
        """Deliver an event.

        Args:
            event: The event kind.
            timestamp: Shift start for upcoming shifts, otherwise the time
                the transition was observed.

        Raises:
            DeliveryError: If the backend rejected or never received the message.
        """

    def announce_startup(self) -> None:
        """Send a lifecycle message when the notifier starts. No-op by default."""

    def announce_shutdown(self) -> None:
        """Send a lifecycle message when the notifier stops. No-op by default."""

    def close(self) -> None:
        self._client.close()

    def _post(self, url: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise DeliveryError(f"failed to send {self.name} notification: {e}") from e
        if not response.is_success:
            raise DeliveryError(
                f"{self.name} returned non-2xx status: {response.status_code}, "
                f"body: {response.text[:500]}"
            )
        return response


def _rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


class WebhookNotifier(Notifier):
    """Posts a small JSON document to a webhook URL."""

    name = "webhook"

    EVENT_TYPES = {
        NotificationEvent.SHIFT_STARTED: "oncall_shift_started",
        NotificationEvent.UPCOMING_SHIFT: "oncall_shift_upcoming",
        NotificationEvent.SHIFT_ENDED: "oncall_shift_ended",
    }

    def __init__(self, webhook_url: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self._webhook_url = webhook_url

    def notify(self, event: NotificationEvent, timestamp: datetime) -> None:
        formatted = format_event(event, timestamp)
        payload = {
            "message": formatted.message,
            "timestamp": _rfc3339(timestamp),
            "event": self.EVENT_TYPES[event],
        }
        self._post(self._webhook_url, json=payload)


class NtfyNotifier(Notifier):
    """Publishes to an ntfy topic, with birth and will messages."""

    name = "ntfy"

    TAGS = {
        NotificationEvent.SHIFT_STARTED: "rotating_light,alarm_clock",
        NotificationEvent.UPCOMING_SHIFT: "alarm_clock,clock1",
        NotificationEvent.SHIFT_ENDED: "white_check_mark,beach_with_umbrella",
    }

    def __init__(self, server_url: str, topic: str, api_key: str = "", **kwargs) -> None:
        super().__init__(**kwargs)
        self._url = f"{server_url.rstrip('/')}/{topic}"
        self._api_key = api_key

    def notify(self, event: NotificationEvent, timestamp: datetime) -> None:
        formatted = format_event(event, timestamp)
        self._publish(
            formatted.message,
            title=formatted.title,
            priority=formatted.urgency.value,
            tags=self.TAGS[event],
        )

    def announce_startup(self) -> None:
        self._publish(
            "Birth message",
            title="PagerDuty Notifier Started",
            priority=Urgency.LOW.value,
            tags="white_check_mark",
        )

    def announce_shutdown(self) -> None:
        self._publish(
            "Will message",
            title="PagerDuty Notifier Stopped",
            priority=Urgency.LOW.value,
            tags="x",
        )

    def _publish(self, message: str, title: str, priority: str, tags: str) -> None:
        headers = {"Title": title, "Priority": priority, "Tags": tags}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._post(self._url, content=message.encode("utf-8"), headers=headers)


class PushoverNotifier(Notifier):
    """Sends push notifications through the Pushover messages API."""

    name = "pushover"

    PRIORITIES = {Urgency.URGENT: "1", Urgency.DEFAULT: "0", Urgency.LOW: "-1"}

    def __init__(
        self,
        app_token: str,
        user_key: str,
        device: str = "",
        sound: str = "",
        api_url: str = PUSHOVER_API_URL,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self._app_token = app_token
        self._user_key = user_key
        self._device = device
        self._sound = sound
        self._api_url = api_url

    def notify(self, event: NotificationEvent, timestamp: datetime) -> None:
        formatted = format_event(event, timestamp)
        data = {
            "token": self._app_token,
            "user": self._user_key,
            "message": formatted.message,
            "title": formatted.title,
            "priority": self.PRIORITIES[formatted.urgency],
            "timestamp": str(int(timestamp.timestamp())),
        }
        if self._device:
            data["device"] = self._device
        if self._sound:
            data["sound"] = self._sound
        self._post(self._api_url, data=data)


def create_notifier(settings: Settings) -> Notifier:
    """Create the notification backend selected in settings."""
    backend = settings.notification_backend
    timeout = settings.http_timeout

    if backend == "webhook":
        logger.info("using_webhook_notifier", url=settings.notification_webhook_url)
        return WebhookNotifier(settings.notification_webhook_url, timeout=timeout)
    if backend == "ntfy":
        logger.info(
            "using_ntfy_notifier",
            server_url=settings.ntfy_server_url,
            topic=settings.ntfy_topic,
            authenticated=bool(settings.ntfy_api_key),
        )
        return NtfyNotifier(
            settings.ntfy_server_url,
            settings.ntfy_topic,
            settings.ntfy_api_key,
            timeout=timeout,
        )
    if backend == "pushover":
        logger.info(
            "using_pushover_notifier",
            device=settings.pushover_device or None,
            sound=settings.pushover_sound or None,
        )
        return PushoverNotifier(
            settings.pushover_app_token,
            settings.pushover_user_key,
            settings.pushover_device,
            settings.pushover_sound,
            timeout=timeout,
        )
    raise ValueError(f"Unsupported notification backend: {backend}")
