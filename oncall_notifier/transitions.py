"""Transition and advance-notification decision logic for oncall-notifier.

Everything here is pure: no I/O, no logging. The scheduler owns fetching,
delivery and persistence.

Advance notifications are deduplicated with a single rolling cooldown
rather than a shift identifier. This assumes shifts start more than
ADVANCE_NOTIFICATION_COOLDOWN apart and that the advance window is shorter
than the cooldown, so one cooldown can never cover two distinct shifts.
With rotations that swap faster than that, a legitimate second reminder
will be suppressed.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from oncall_notifier.models import NotificationEvent, PersistedState, utc_now

ADVANCE_NOTIFICATION_COOLDOWN = timedelta(hours=24)


def has_transition_to_on_call(previous: PersistedState, currently_on_call: bool) -> bool:
    """True when the user went from off call to on call."""
    return not previous.was_on_call and currently_on_call


def has_transition_to_off_call(previous: PersistedState, currently_on_call: bool) -> bool:
    """True when the user went from on call to off call."""
    return previous.was_on_call and not currently_on_call


def transition_events(
    previous: PersistedState,
    currently_on_call: bool,
    notify_shift_ended: bool = False,
) -> list[NotificationEvent]:
    """Return the shift start/end events raised by the latest on-call status."""
    events: list[NotificationEvent] = []
    if has_transition_to_on_call(previous, currently_on_call):
        events.append(NotificationEvent.SHIFT_STARTED)
    if notify_shift_ended and has_transition_to_off_call(previous, currently_on_call):
        events.append(NotificationEvent.SHIFT_ENDED)
    return events


def should_send_advance_notification(
    state: PersistedState,
    shift_start_time: datetime,
    advance_window: timedelta,
    now: datetime | None = None,
) -> bool:
    """Decide whether a reminder for the upcoming shift is due.

    Args:
        state: Current persisted state.
        shift_start_time: Start of the next known shift (aware, UTC).
        advance_window: How long before the shift to notify. Zero or
            negative disables advance notifications.
        now: Evaluation instant, defaults to the current UTC time.
    """
    if advance_window <= timedelta(0):
        return False

    now = now or utc_now()
    time_until_shift = shift_start_time - now

    # Already started (stale data) or not yet inside the window
    if time_until_shift <= timedelta(0) or time_until_shift > advance_window:
        return False

    last_sent = state.last_advance_notification_sent
    if last_sent is not None and now - last_sent < ADVANCE_NOTIFICATION_COOLDOWN:
        return False

    return True


def record_advance_notification_sent(state: PersistedState) -> None:
    """Stamp the in-memory state with the current UTC time."""
    state.last_advance_notification_sent = utc_now()
