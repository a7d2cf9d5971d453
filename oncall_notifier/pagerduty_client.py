"""PagerDuty API client for oncall-notifier."""

from __future__ import annotations

from datetime import timedelta

import httpx
import structlog

from oncall_notifier.config import Settings
from oncall_notifier.models import UpcomingShift, parse_timestamp, utc_now

logger = structlog.get_logger()

PAGERDUTY_API_URL = "https://api.pagerduty.com"


class SourceQueryError(Exception):
    """Raised when the on-call source cannot be queried."""


class PagerDutyClient:
    """Answers on-call questions for one user on one PagerDuty schedule."""

    def __init__(
        self,
        api_token: str,
        schedule_id: str,
        user_id: str,
        timeout: float = 30.0,
        lookahead: timedelta = timedelta(days=7),
        base_url: str = PAGERDUTY_API_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._schedule_id = schedule_id
        self._user_id = user_id
        self._lookahead = lookahead
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Token token={api_token}",
                "Accept": "application/vnd.pagerduty+json;version=2",
            },
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> PagerDutyClient:
        return cls(
            api_token=settings.pd_api_token,
            schedule_id=settings.pd_schedule_id,
            user_id=settings.pd_user_id,
            timeout=settings.http_timeout,
            lookahead=timedelta(days=settings.lookahead_days),
        )

    def close(self) -> None:
        self._client.close()

    def is_on_call(self) -> bool:
        """Return True if the configured user is currently on call."""
        oncalls = self._list_oncalls({"schedule_ids[]": self._schedule_id})
        return any(self._entry_user_id(entry) == self._user_id for entry in oncalls)

    def get_upcoming_shift(self) -> UpcomingShift | None:
        """Return the earliest future shift for the user within the lookahead."""
        now = utc_now()
        oncalls = self._list_oncalls(
            {
                "schedule_ids[]": self._schedule_id,
                "since": now.isoformat(),
                "until": (now + self._lookahead).isoformat(),
            }
        )

        next_shift: UpcomingShift | None = None
        for entry in oncalls:
            if self._entry_user_id(entry) != self._user_id:
                continue
            try:
                start_time = parse_timestamp(entry["start"])
                end_time = parse_timestamp(entry["end"])
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning("failed_to_parse_oncall", entry=entry, error=str(e))
                continue

            if start_time <= now:
                continue
            if next_shift is None or start_time < next_shift.start_time:
                next_shift = UpcomingShift(start_time=start_time, end_time=end_time)

        return next_shift

    def _list_oncalls(self, params: dict) -> list[dict]:
        """Fetch /oncalls and return the list of entries."""
        logger.debug("querying_pagerduty", params=params)
        try:
            response = self._client.get("/oncalls", params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise SourceQueryError(
                f"PagerDuty returned status {e.response.status_code} for /oncalls"
            ) from e
        except httpx.HTTPError as e:
            raise SourceQueryError(f"failed to query PagerDuty /oncalls: {e}") from e
        except ValueError as e:
            raise SourceQueryError(f"invalid JSON from PagerDuty /oncalls: {e}") from e

        oncalls = payload.get("oncalls") if isinstance(payload, dict) else None
        if not isinstance(oncalls, list):
            raise SourceQueryError("PagerDuty /oncalls response has no 'oncalls' list")
        return oncalls

    @staticmethod
    def _entry_user_id(entry: dict) -> str | None:
        user = entry.get("user") if isinstance(entry, dict) else None
        return user.get("id") if isinstance(user, dict) else None
