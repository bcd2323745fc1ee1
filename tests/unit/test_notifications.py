"""Tests for notification transports, retry policy and the circuit breaker."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import httpx
import pytest

from visit_tracker.core.enums import NotificationSeverity
from visit_tracker.notifications.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
)
from visit_tracker.notifications.retry import (
    compute_backoff,
    next_attempt_at,
    parse_retry_after,
)
from visit_tracker.notifications.transports import (
    LoggingNotifier,
    NotificationDeliveryError,
    WebhookNotifier,
)

pytestmark = pytest.mark.unit

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TickingClock:
    def __init__(self):
        self.now = NOW

    def __call__(self):
        return self.now


class TestCircuitBreaker:
    """Test circuit breaker functionality."""

    def test_initial_state_closed(self):
        cb = CircuitBreaker()
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_opens_after_threshold(self):
        cb = CircuitBreaker(failure_threshold=3)
        failing = Mock(side_effect=RuntimeError("boom"))

        for i in range(3):
            with pytest.raises(RuntimeError, match="boom"):
                cb.call(failing)
        assert cb.state == CircuitState.OPEN

        with pytest.raises(CircuitOpenError):
            cb.call(failing)
        assert failing.call_count == 3

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker(failure_threshold=3)
        with pytest.raises(RuntimeError):
            cb.call(Mock(side_effect=RuntimeError("boom")))

        assert cb.call(lambda: "ok") == "ok"
        assert cb.failure_count == 0

    def test_half_open_then_closed_after_timeout(self):
        clock = TickingClock()
        cb = CircuitBreaker(
            failure_threshold=1, success_threshold=2, timeout_seconds=30, clock=clock
        )
        with pytest.raises(RuntimeError):
            cb.call(Mock(side_effect=RuntimeError("boom")))
        assert cb.state == CircuitState.OPEN

        clock.now = NOW + timedelta(seconds=30)
        cb.call(lambda: None)
        assert cb.state == CircuitState.HALF_OPEN
        cb.call(lambda: None)
        assert cb.state == CircuitState.CLOSED

    def test_failure_in_half_open_reopens(self):
        clock = TickingClock()
        cb = CircuitBreaker(failure_threshold=1, timeout_seconds=10, clock=clock)
        with pytest.raises(RuntimeError):
            cb.call(Mock(side_effect=RuntimeError("boom")))

        clock.now = NOW + timedelta(seconds=11)
        with pytest.raises(RuntimeError):
            cb.call(Mock(side_effect=RuntimeError("still down")))
        assert cb.state == CircuitState.OPEN

    def test_reset_and_stats(self):
        cb = CircuitBreaker(failure_threshold=1)
        with pytest.raises(RuntimeError):
            cb.call(Mock(side_effect=RuntimeError("boom")))

        assert cb.get_stats()["state"] == "open"
        cb.reset()
        assert cb.get_stats() == {
            "state": "closed",
            "failure_count": 0,
            "success_count": 0,
            "failure_threshold": 1,
            "last_failure_time": None,
        }


class TestRetryPolicy:
    def test_backoff_doubles_until_cap(self):
        assert compute_backoff(0, 5, 600) == 5
        assert compute_backoff(3, 5, 600) == 40
        assert compute_backoff(10, 5, 600) == 600

    def test_backoff_jitter_stays_in_band(self):
        for _ in range(50):
            delay = compute_backoff(2, 5, 600, jitter_ratio=0.1)
            assert 18 <= delay <= 22

    def test_retry_after_seconds(self):
        assert parse_retry_after("120", NOW) == NOW + timedelta(seconds=120)

    def test_retry_after_http_date(self):
        value = "Mon, 02 Mar 2026 09:05:00 GMT"
        assert parse_retry_after(value, NOW) == NOW + timedelta(minutes=5)

    @pytest.mark.parametrize(
        "value", [None, "", "soon", "-3", "Mon, 02 Mar 2026 08:00:00 GMT"]
    )
    def test_retry_after_rejected(self, value):
        assert parse_retry_after(value, NOW) is None

    def test_next_attempt_prefers_requested_time(self):
        requested = NOW + timedelta(minutes=7)
        assert next_attempt_at(3, NOW, 5, 600, requested=requested) == requested

    def test_next_attempt_backs_off(self):
        later = next_attempt_at(1, NOW, 5, 600)
        assert NOW + timedelta(seconds=4) <= later <= NOW + timedelta(seconds=6)


def _webhook(handler, **kwargs) -> WebhookNotifier:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return WebhookNotifier(
        "https://hooks.example.org/notify", client=client, clock=lambda: NOW, **kwargs
    )


class TestWebhookNotifier:
    def test_posts_json_body(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(202)

        notifier = _webhook(handler)
        notifier.notify(
            ["+5511987654321", "monitoring-center"],
            "Help requested",
            NotificationSeverity.WARNING,
            {"visit_id": "visit-1"},
        )
        notifier.close()

        assert seen == [
            {
                "recipients": ["+5511987654321", "monitoring-center"],
                "message": "Help requested",
                "severity": "warning",
                "payload": {"visit_id": "visit-1"},
            }
        ]

    def test_throttled_response_carries_retry_at(self):
        notifier = _webhook(
            lambda request: httpx.Response(429, headers={"Retry-After": "30"})
        )
        with pytest.raises(NotificationDeliveryError) as exc_info:
            notifier.notify(["x"], "m", NotificationSeverity.INFO, {})
        assert exc_info.value.retry_at == NOW + timedelta(seconds=30)

    def test_server_error_is_delivery_error(self):
        notifier = _webhook(lambda request: httpx.Response(500))
        with pytest.raises(NotificationDeliveryError) as exc_info:
            notifier.notify(["x"], "m", NotificationSeverity.INFO, {})
        assert exc_info.value.retry_at is None

    def test_connection_error_is_delivery_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        notifier = _webhook(handler)
        with pytest.raises(NotificationDeliveryError, match="request failed"):
            notifier.notify(["x"], "m", NotificationSeverity.INFO, {})

    def test_open_circuit_fails_fast(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        notifier = _webhook(handler, breaker=CircuitBreaker(failure_threshold=1))
        with pytest.raises(NotificationDeliveryError):
            notifier.notify(["x"], "m", NotificationSeverity.INFO, {})
        with pytest.raises(NotificationDeliveryError, match="circuit open"):
            notifier.notify(["x"], "m", NotificationSeverity.INFO, {})
        assert len(calls) == 1


def test_logging_notifier_logs_at_severity(caplog):
    with caplog.at_level("INFO", logger="visit_tracker.notifications"):
        LoggingNotifier().notify(
            ["monitoring-center"], "Visit visit-1 overdue", NotificationSeverity.CRITICAL, {}
        )
    assert any(
        r.levelname == "CRITICAL" and "Visit visit-1 overdue" in r.getMessage()
        for r in caplog.records
    )
