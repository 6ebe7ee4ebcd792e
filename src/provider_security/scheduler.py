"""Recurring assessment cadences.

One scheduler owns three independent asyncio tasks (security audit,
compliance check, vulnerability scan). Each sleeps for its configured
frequency and then publishes a tick event. The scheduler does not know
which providers exist; subscribers to the tick topics decide what to run.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from provider_security.config import AuditSchedule
from provider_security.events import EventBus
from provider_security.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400

FREQUENCY_SECONDS: dict[str, float] = {
    "daily": DAY_SECONDS,
    "weekly": DAY_SECONDS * 7,
    "monthly": DAY_SECONDS * 30,
    "quarterly": DAY_SECONDS * 90,
    "annually": DAY_SECONDS * 365,
}

KIND_TOPICS: dict[str, str] = {
    "security": "scheduled-security-audit",
    "compliance": "scheduled-compliance-check",
    "vulnerability": "scheduled-vulnerability-scan",
}


class SecurityScheduler:
    """Runs the three assessment cadences with explicit start/cancel/shutdown."""

    def __init__(
        self,
        bus: EventBus,
        schedule: AuditSchedule | None = None,
        *,
        lock: asyncio.Lock | None = None,
        interval_overrides: dict[str, float] | None = None,
    ) -> None:
        self.bus = bus
        self.schedule = schedule or AuditSchedule()
        self._lock = lock or asyncio.Lock()
        self._overrides = dict(interval_overrides or {})
        self._tasks: dict[str, asyncio.Task] = {}
        self.ticks: dict[str, int] = {kind: 0 for kind in KIND_TOPICS}
        self.last_tick: dict[str, datetime] = {}

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks.values())

    def interval(self, kind: str) -> float:
        if kind in self._overrides:
            return self._overrides[kind]
        return FREQUENCY_SECONDS[getattr(self.schedule, kind)]

    def start(self) -> None:
        """Start every cadence that is not already running.

        Raises:
            RuntimeError: If called outside a running event loop.
        """
        asyncio.get_running_loop()
        for kind in KIND_TOPICS:
            task = self._tasks.get(kind)
            if task is not None and not task.done():
                continue
            self._tasks[kind] = asyncio.create_task(self._run(kind), name=f"security-scheduler-{kind}")
            logger.info("Scheduled %s cadence every %.0fs", kind, self.interval(kind))

    def cancel(self, kind: str) -> bool:
        """Stop one cadence. Returns False if it was not running.

        Called from inside the cadence's own tick handler, the loop is
        deregistered and exits once the handler returns.
        """
        if kind not in KIND_TOPICS:
            raise ConfigurationError(f"Unknown schedule kind: {kind}", details={"kind": kind})
        task = self._tasks.pop(kind, None)
        if task is None or task.done():
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    async def shutdown(self) -> None:
        """Cancel all cadences and wait for their tasks to finish.

        A cadence that is itself running the shutdown (a tick handler that
        reschedules) is deregistered rather than cancelled, so the caller's
        coroutine is not interrupted.
        """
        current = asyncio.current_task()
        tasks = list(self._tasks.values())
        self._tasks.clear()
        others = [t for t in tasks if t is not current]
        for task in others:
            task.cancel()
        await asyncio.gather(*others, return_exceptions=True)
        if tasks:
            logger.info("Security scheduler stopped")

    async def reschedule(self, schedule: AuditSchedule) -> None:
        """Apply a new schedule, restarting cadences if they were running."""
        was_running = self.running
        await self.shutdown()
        self.schedule = schedule
        if was_running:
            self.start()

    async def _run(self, kind: str) -> None:
        topic = KIND_TOPICS[kind]
        me = asyncio.current_task()
        while self._tasks.get(kind) is me:
            await asyncio.sleep(self.interval(kind))
            if self._tasks.get(kind) is not me:
                return
            async with self._lock:
                self.ticks[kind] += 1
                now = datetime.now(UTC)
                self.last_tick[kind] = now
                payload = {
                    "kind": kind,
                    "frequency": getattr(self.schedule, kind),
                    "tick": self.ticks[kind],
                    "timestamp": now,
                }
            logger.debug("Scheduler tick %s #%d", kind, payload["tick"])
            await self.bus.publish(topic, payload)
