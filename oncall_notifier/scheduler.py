"""Main polling loop for oncall-notifier."""

from __future__ import annotations

import asyncio
import signal

import structlog

from oncall_notifier.config import Settings
from oncall_notifier.models import NotificationEvent, PersistedState, utc_now
from oncall_notifier.notifiers import DeliveryError, Notifier, create_notifier
from oncall_notifier.pagerduty_client import PagerDutyClient, SourceQueryError
from oncall_notifier.state import StateStore, StorageReadError, StorageWriteError
from oncall_notifier.transitions import (
    record_advance_notification_sent,
    should_send_advance_notification,
    transition_events,
)

logger = structlog.get_logger()


class Scheduler:
    """Polls PagerDuty for on-call changes and sends notifications."""

    def __init__(
        self,
        settings: Settings,
        source: PagerDutyClient,
        store: StateStore,
        notifier: Notifier,
    ) -> None:
        self._settings = settings
        self._source = source
        self._store = store
        self._notifier = notifier
        self._running = False
        self._stop_event = asyncio.Event()

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def source(self) -> PagerDutyClient:
        return self._source

    async def run(self) -> None:
        """Run the polling loop until stop() is called.

        Raises:
            StorageReadError: If the persisted state cannot be loaded.
        """
        state = self._store.load()
        logger.info("initial_state", was_on_call=state.was_on_call)

        # stop() may already have been called during startup
        self._running = not self._stop_event.is_set()
        logger.info(
            "scheduler_started",
            check_interval=self._settings.check_interval,
            schedule_id=self._settings.pd_schedule_id,
            user_id=self._settings.pd_user_id,
            advance_notification_time=str(self._settings.advance_notification_time),
        )

        while self._running:
            try:
                await self._poll_cycle(state)
            except Exception as e:
                logger.error("poll_cycle_error", error=str(e))

            if not self._running:
                break

            # Wait for next poll interval, waking early on stop()
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._settings.check_interval
                )
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                break

        logger.info("scheduler_stopped")

    def stop(self) -> None:
        """Signal the scheduler to stop after the current cycle."""
        logger.info("scheduler_stopping")
        self._running = False
        self._stop_event.set()

    async def _poll_cycle(self, state: PersistedState) -> list[NotificationEvent]:
        """Execute a single poll cycle against the in-memory state.

        Returns the events that were raised this cycle, delivered or not.
        """
        logger.debug("poll_cycle_start")
        raised: list[NotificationEvent] = []

        try:
            is_on_call = self._source.is_on_call()
        except SourceQueryError as e:
            logger.error("on_call_query_failed", error=str(e))
            return raised

        logger.info("on_call_status", on_call=is_on_call, previous=state.was_on_call)

        if self._settings.advance_notifications_enabled:
            if self._check_upcoming_shift(state):
                raised.append(NotificationEvent.UPCOMING_SHIFT)

        for event in transition_events(state, is_on_call, self._settings.notify_shift_ended):
            raised.append(event)
            try:
                self._notifier.notify(event, utc_now())
            except DeliveryError as e:
                logger.error("notification_failed", notification_event=event.value, error=str(e))
            else:
                logger.info("notification_sent", notification_event=event.value)

        state.was_on_call = is_on_call
        try:
            self._store.save(state)
        except StorageWriteError as e:
            logger.error("state_save_failed", error=str(e))

        return raised

    def _check_upcoming_shift(self, state: PersistedState) -> bool:
        """Send an advance notification if one is due. Returns True if one was raised."""
        try:
            shift = self._source.get_upcoming_shift()
        except SourceQueryError as e:
            logger.error("upcoming_shift_query_failed", error=str(e))
            return False

        if shift is None:
            logger.debug("no_upcoming_shift")
            return False

        log = logger.bind(shift_start=shift.start_time.isoformat())
        if not should_send_advance_notification(
            state, shift.start_time, self._settings.advance_notification_time
        ):
            log.debug("advance_notification_not_needed")
            return False

        try:
            self._notifier.notify(NotificationEvent.UPCOMING_SHIFT, shift.start_time)
        except DeliveryError as e:
            # Leave the marker unset so the next cycle retries
            log.error("advance_notification_failed", error=str(e))
        else:
            record_advance_notification_sent(state)
            log.info("advance_notification_sent")
        return True


def configure_logging(log_level: str) -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog.stdlib.NAME_TO_LEVEL.get(log_level.lower(), 20)
        ),
    )


def create_scheduler(settings: Settings | None = None) -> Scheduler:
    """Create a scheduler instance with settings from environment."""
    settings = settings or Settings()
    configure_logging(settings.log_level)

    return Scheduler(
        settings,
        source=PagerDutyClient.from_settings(settings),
        store=StateStore(settings.state_file_path),
        notifier=create_notifier(settings),
    )


def _announce(notifier: Notifier, starting: bool) -> None:
    """Best-effort lifecycle message."""
    kind = "birth" if starting else "will"
    try:
        if starting:
            notifier.announce_startup()
        else:
            notifier.announce_shutdown()
    except DeliveryError as e:
        logger.warning("lifecycle_message_failed", kind=kind, error=str(e))
    else:
        logger.debug("lifecycle_message_sent", kind=kind)


def run_with_signal_handling(settings: Settings | None = None) -> None:
    """Run the scheduler with graceful shutdown on SIGINT/SIGTERM.

    Exits with status 1 if the persisted state cannot be loaded. The
    shutdown message is only sent after the polling loop has run.
    """
    scheduler = create_scheduler(settings)
    notifier = scheduler.notifier

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    # Set up signal handlers
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, scheduler.stop)

    _announce(notifier, starting=True)
    try:
        loop.run_until_complete(scheduler.run())
    except StorageReadError as e:
        logger.critical("state_load_failed", error=str(e))
        raise SystemExit(1) from e
    else:
        _announce(notifier, starting=False)
    finally:
        loop.close()
        notifier.close()
        scheduler.source.close()
        logger.info("shutdown_complete")
