"""Tests for oncall_notifier.pagerduty_client."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from oncall_notifier.pagerduty_client import PagerDutyClient, SourceQueryError


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def _make_client(handler) -> PagerDutyClient:
    return PagerDutyClient(
        api_token="secret",
        schedule_id="PSCHED1",
        user_id="PUSER1",
        transport=httpx.MockTransport(handler),
    )


def _oncall(user_id: str, start: str | None = None, end: str | None = None) -> dict:
    return {"user": {"id": user_id}, "start": start, "end": end}


class TestIsOnCall:
    """Tests for PagerDutyClient.is_on_call."""

    def test_user_is_on_call(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200, json={"oncalls": [_oncall("POTHER"), _oncall("PUSER1")]}
            )

        assert _make_client(handler).is_on_call() is True

        request = requests[0]
        assert request.url.path == "/oncalls"
        assert request.url.params["schedule_ids[]"] == "PSCHED1"
        assert request.headers["Authorization"] == "Token token=secret"
        assert "version=2" in request.headers["Accept"]

    def test_user_not_on_call(self):
        def handler(request):
            return httpx.Response(200, json={"oncalls": [_oncall("POTHER")]})

        assert _make_client(handler).is_on_call() is False

    def test_http_error_raises(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "Unauthorized"}})

        with pytest.raises(SourceQueryError, match="401"):
            _make_client(handler).is_on_call()

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SourceQueryError):
            _make_client(handler).is_on_call()

    def test_malformed_payload_raises(self):
        def handler(request):
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(SourceQueryError):
            _make_client(handler).is_on_call()

    def test_invalid_json_raises(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        with pytest.raises(SourceQueryError):
            _make_client(handler).is_on_call()


class TestGetUpcomingShift:
    """Tests for PagerDutyClient.get_upcoming_shift."""

    def test_returns_earliest_future_shift(self):
        now = datetime.now(timezone.utc)
        soon = now + timedelta(hours=2)
        later = now + timedelta(days=2)
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "oncalls": [
                        _oncall("PUSER1", _iso(later), _iso(later + timedelta(hours=8))),
                        _oncall("POTHER", _iso(now + timedelta(hours=1)), _iso(soon)),
                        _oncall("PUSER1", _iso(soon), _iso(soon + timedelta(hours=8))),
                        _oncall("PUSER1", _iso(now - timedelta(hours=1)), _iso(soon)),
                    ]
                },
            )

        shift = _make_client(handler).get_upcoming_shift()

        assert shift is not None
        assert abs(shift.start_time - soon) < timedelta(seconds=1)
        assert abs(shift.end_time - (soon + timedelta(hours=8))) < timedelta(seconds=1)
        params = seen[0].url.params
        assert "since" in params and "until" in params

    def test_no_shift_for_user(self):
        def handler(request):
            return httpx.Response(200, json={"oncalls": [_oncall("POTHER")]})

        assert _make_client(handler).get_upcoming_shift() is None

    def test_unparsable_entries_skipped(self):
        start = datetime.now(timezone.utc) + timedelta(hours=3)

        def handler(request):
            return httpx.Response(
                200,
                json={
                    "oncalls": [
                        _oncall("PUSER1", "garbage", "garbage"),
                        _oncall("PUSER1", None, None),
                        _oncall("PUSER1", _iso(start), _iso(start + timedelta(hours=1))),
                    ]
                },
            )

        shift = _make_client(handler).get_upcoming_shift()

        assert shift is not None
        assert abs(shift.start_time - start) < timedelta(seconds=1)

    def test_error_raises(self):
        def handler(request):
            return httpx.Response(503)

        with pytest.raises(SourceQueryError):
            _make_client(handler).get_upcoming_shift()
