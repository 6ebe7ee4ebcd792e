"""Webhook delivery of critical security alerts.

Posts ``critical-alert-sent`` payloads as JSON with exponential backoff on
transient failures (connection errors, timeouts, 429 and 5xx responses).
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

import requests

from provider_security.config import OrchestrationConfig, SecuritySettings
from provider_security.events import EventBus
from provider_security.exceptions import NotificationError
from provider_security.models import CriticalAlertNotification

logger = logging.getLogger(__name__)


class WebhookNotifier:
    """Sends critical alert notifications to an HTTP endpoint."""

    def __init__(self, url: str, timeout: int = 10, max_retries: int = 3) -> None:
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    @classmethod
    def from_settings(cls, settings: SecuritySettings) -> WebhookNotifier | None:
        """Build a notifier from settings, or None when no webhook URL is set."""
        if not settings.webhook_url:
            return None
        return cls(settings.webhook_url, timeout=settings.webhook_timeout, max_retries=settings.webhook_max_retries)

    def send(self, notification: CriticalAlertNotification) -> requests.Response:
        """POST a notification with retry logic.

        The initial attempt plus up to ``max_retries`` retries are made.

        Raises:
            NotificationError: If the endpoint rejects the payload or every
                attempt fails.
        """
        body = notification.model_dump_json()
        last_exception: NotificationError | None = None
        for attempt in range(1, self.max_retries + 2):
            try:
                response = self.session.post(self.url, data=body, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_exception = NotificationError(
                    f"Webhook connection failed: {exc}", details={"url": self.url, "attempt": attempt}
                )
            else:
                if response.ok:
                    logger.info("Delivered critical alert for provider %s", notification.finding.provider_id)
                    return response
                status = response.status_code
                last_exception = NotificationError(
                    f"Webhook error: HTTP {status}",
                    status_code=status,
                    details={"url": self.url, "body": response.text[:500]},
                )
                if status != 429 and status < 500:
                    raise last_exception
            if attempt <= self.max_retries:
                wait = 2 ** (attempt - 1)
                logger.warning(
                    "Webhook delivery failed, retrying in %ds (attempt %d/%d)", wait, attempt, self.max_retries + 1
                )
                time.sleep(wait)
        raise last_exception  # type: ignore[misc]

    def attach(self, bus: EventBus, get_config: Callable[[], OrchestrationConfig]) -> Callable[[], None]:
        """Deliver ``critical-alert-sent`` events while webhook notifications are enabled.

        Returns:
            The unsubscribe callable from the bus.
        """

        async def handle(topic: str, notification: CriticalAlertNotification) -> None:
            if not get_config().notifications.webhook:
                return
            await asyncio.to_thread(self.send, notification)

        return bus.subscribe("critical-alert-sent", handle)
