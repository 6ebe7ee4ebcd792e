"""Topic-based event bus connecting the validator, compliance checker,
scanner, scheduler and orchestrator.

Handlers are registered per topic (or ``"*"`` for every topic) and may be
plain functions or coroutines. Publishing awaits each handler in
registration order; a handler that raises is logged and skipped so one bad
subscriber cannot break the publisher.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from provider_security.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

WILDCARD = "*"

TOPICS: frozenset[str] = frozenset(
    {
        # validator
        "audit-completed",
        "audit-error",
        "report-generated",
        "rule-added",
        "rule-updated",
        "rule-removed",
        # compliance
        "compliance-assessment-completed",
        "framework-added",
        "framework-updated",
        "framework-removed",
        # scanner
        "scan-completed",
        "scan-error",
        # orchestrator
        "assessment-started",
        "assessment-error",
        "assessment-completed",
        "critical-finding",
        "incident-created",
        "incident-updated",
        "alert-acknowledged",
        "alert-resolved",
        "emergency-shutdown-triggered",
        "critical-alert-sent",
        "auto-remediation-completed",
        "auto-remediation-failed",
        "comprehensive-report-generated",
        "configuration-updated",
        # scheduler
        "scheduled-security-audit",
        "scheduled-compliance-check",
        "scheduled-vulnerability-scan",
    }
)

Handler = Callable[[str, Any], Awaitable[None] | None]


class EventBus:
    """In-process publish/subscribe bus with a fixed topic catalogue."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = {}
        self.published_count = 0

    @staticmethod
    def _check_topic(topic: str, allow_wildcard: bool = False) -> None:
        if topic == WILDCARD and allow_wildcard:
            return
        if topic not in TOPICS:
            raise ConfigurationError(f"Unknown event topic: {topic}", details={"topic": topic})

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler(topic, payload)`` for ``topic``.

        Returns:
            A callable that removes the subscription again.
        """
        self._check_topic(topic, allow_wildcard=True)
        self._subscribers.setdefault(topic, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    async def publish(self, topic: str, payload: Any = None) -> None:
        """Deliver ``payload`` to topic subscribers, then wildcard subscribers."""
        self._check_topic(topic)
        self.published_count += 1
        handlers = list(self._subscribers.get(topic, [])) + list(self._subscribers.get(WILDCARD, []))
        for handler in handlers:
            try:
                result = handler(topic, payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("Event handler %r for '%s' failed: %s", handler, topic, exc)
