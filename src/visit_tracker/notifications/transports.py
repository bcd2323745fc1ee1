"""Notification transports.

The tracking core only decides that a notification goes out and to whom.
Transports do the actual delivery and raise ``NotificationDeliveryError`` on
failure; the dispatcher turns that into a retry.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..core.enums import NotificationSeverity
from ..utils.logging_config import get_logger
from .circuit_breaker import CircuitBreaker, CircuitOpenError
from .retry import parse_retry_after

logger = get_logger("notifications")


class NotificationDeliveryError(Exception):
    """A transport could not deliver a notification."""

    def __init__(self, message: str, retry_at: Optional[datetime] = None):
        super().__init__(message)
        self.retry_at = retry_at


class Notifier(ABC):
    """Delivers one notification to a list of recipients."""

    @abstractmethod
    def notify(
        self,
        recipients: List[str],
        message: str,
        severity: NotificationSeverity,
        payload: Dict[str, Any],
    ) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes notifications to the notifications log. The default transport."""

    _LEVELS = {
        NotificationSeverity.INFO: "info",
        NotificationSeverity.WARNING: "warning",
        NotificationSeverity.CRITICAL: "critical",
    }

    def notify(self, recipients, message, severity, payload) -> None:
        log = getattr(logger, self._LEVELS[NotificationSeverity(severity)])
        log(f"[{NotificationSeverity(severity).value}] to {', '.join(recipients)}: {message}")


class WebhookNotifier(Notifier):
    """POSTs notifications as JSON to a webhook, guarded by a circuit breaker."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.Client] = None,
        breaker: Optional[CircuitBreaker] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.url = url
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._breaker = breaker or CircuitBreaker()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def notify(self, recipients, message, severity, payload) -> None:
        body = {
            "recipients": list(recipients),
            "message": message,
            "severity": NotificationSeverity(severity).value,
            "payload": payload,
        }

        try:
            response = self._breaker.call(lambda: self._client.post(self.url, json=body))
        except CircuitOpenError as e:
            raise NotificationDeliveryError("webhook circuit open") from e
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(f"webhook request failed: {e}") from e

        if response.status_code in (429, 503):
            retry_at = parse_retry_after(response.headers.get("Retry-After"), self._clock())
            raise NotificationDeliveryError(
                f"webhook throttled with HTTP {response.status_code}", retry_at=retry_at
            )
        if response.status_code >= 400:
            raise NotificationDeliveryError(
                f"webhook rejected notification with HTTP {response.status_code}"
            )

    def close(self) -> None:
        self._client.close()
