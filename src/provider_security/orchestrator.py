"""Fleet-wide security orchestration.

The SecurityOrchestrator fans out validator audits, compliance assessments
and vulnerability scans across providers, aggregates the results into a
dashboard, escalates critical findings into incidents, tracks alert,
incident and task lifecycles, and runs auto-remediation.

All orchestrator state (history, alerts, incidents, tasks, configuration)
is written under a single asyncio lock. Events are always published after
the lock is released so subscribers may call back into the orchestrator.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from provider_security import aggregation
from provider_security.compliance import ComplianceChecker
from provider_security.config import OrchestrationConfig, SecuritySettings, get_settings
from provider_security.events import EventBus
from provider_security.exceptions import (
    ConfigurationError,
    IncidentTransitionError,
    ProviderAssessmentError,
    ReportPersistenceError,
)
from provider_security.models import (
    SEVERITY_ORDER,
    CriticalAlertNotification,
    CriticalFinding,
    HistoryEntry,
    IncidentStatus,
    IncidentTimelineEntry,
    Provider,
    ProviderAssessmentRecord,
    SecurityAlert,
    SecurityDashboard,
    SecurityIncident,
    SecurityTask,
)
from provider_security.reports import build_security_report
from provider_security.rules import RuleRegistry, SecurityRule
from provider_security.scanner import VulnerabilityScanner
from provider_security.scheduler import SecurityScheduler
from provider_security.storage import ReportSink, ReportStorage
from provider_security.validator import SecurityValidator

logger = logging.getLogger(__name__)

DEFAULT_FRAMEWORKS = ["GDPR", "SOC2"]
DEFAULT_DEPTH = "deep"

INCIDENT_ORDER: dict[str, int] = {
    "open": 0,
    "investigating": 1,
    "contained": 2,
    "resolved": 3,
    "closed": 4,
}
INACTIVE_INCIDENT_STATES = ("resolved", "closed")

FINDING_CATEGORIES = {"security": "breach", "compliance": "compliance", "vulnerability": "vulnerability"}
FINDING_REPORTERS = {
    "security": "SecurityValidator",
    "compliance": "ComplianceChecker",
    "vulnerability": "VulnerabilityScanner",
}

Remediator = Callable[[SecurityTask], Any]


def log_remediator(task: SecurityTask) -> None:
    """Default remediator: records the action without changing the provider."""
    logger.info("Auto-remediating %s on provider %s: %s", task.id, task.provider_id, task.title)


class SecurityOrchestrator:
    """Coordinates assessment, escalation and lifecycle management for a provider fleet."""

    def __init__(
        self,
        config: OrchestrationConfig | dict | None = None,
        *,
        bus: EventBus | None = None,
        registry: RuleRegistry | None = None,
        validator: SecurityValidator | None = None,
        compliance_checker: ComplianceChecker | None = None,
        scanner: VulnerabilityScanner | None = None,
        storage: ReportSink | None = None,
        remediator: Remediator | None = None,
        history_limit: int | None = None,
        settings: SecuritySettings | None = None,
        scheduler_intervals: dict[str, float] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        if isinstance(config, dict):
            config = OrchestrationConfig.model_validate(config)
        self.config = config or OrchestrationConfig()
        self.history_limit = history_limit or self.settings.history_limit

        self.bus = bus or EventBus()
        self.storage = storage if storage is not None else ReportStorage(self.settings.report_path)
        self.validator = validator or SecurityValidator(
            self.bus, registry=registry, storage=self.storage, history_limit=self.history_limit
        )
        self.compliance_checker = compliance_checker or ComplianceChecker(
            self.bus, self.validator, history_limit=self.history_limit
        )
        self.scanner = scanner or VulnerabilityScanner(self.bus)
        self.remediator = remediator or log_remediator

        self._lock = asyncio.Lock()
        self._history: deque[HistoryEntry] = deque(maxlen=self.history_limit)
        self._tasks: deque[SecurityTask] = deque(maxlen=self.history_limit)
        self._alerts: list[SecurityAlert] = []
        self._incidents: list[SecurityIncident] = []
        self.assessments_run = 0

        self.scheduler = SecurityScheduler(
            self.bus, self.config.audit_schedule, lock=self._lock, interval_overrides=scheduler_intervals
        )
        self._unsubscribers = [
            self.bus.subscribe("audit-completed", self._on_audit_completed),
            self.bus.subscribe("compliance-assessment-completed", self._on_compliance_assessment),
            self.bus.subscribe("scan-completed", self._on_scan_completed),
        ]

    # -- lifecycle -------------------------------------------------------------

    def start(self) -> None:
        """Start the recurring assessment cadences."""
        self.scheduler.start()

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()

    def close(self) -> None:
        """Detach the escalation handlers from the bus."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # -- assessment ------------------------------------------------------------

    def _validate_request(self, providers: list[Provider], frameworks: list[str], depth: str) -> None:
        for framework_id in frameworks:
            self.compliance_checker.require_framework(framework_id)
        self.scanner.validate_depth(depth)
        seen: set[str] = set()
        for provider in providers:
            if provider.id in seen:
                raise ConfigurationError(
                    f"Duplicate provider id: {provider.id}", details={"provider_id": provider.id}
                )
            seen.add(provider.id)

    async def _assess_one(
        self,
        provider: Provider,
        frameworks: list[str],
        include_compliance: list[str] | None,
        depth: str,
    ) -> ProviderAssessmentRecord:
        try:
            audit = await self.validator.audit_provider(
                provider.id, provider.type, provider.instance, provider.config,
                include_compliance=include_compliance,
            )
            assessments = [
                await self.compliance_checker.assess_compliance(
                    framework_id, provider.id, provider.instance, provider.config,
                    provider_type=provider.type, audit=audit,
                )
                for framework_id in frameworks
            ]
            scan = await self.scanner.scan_provider(
                provider.id, provider.type, provider.instance, provider.config, depth=depth
            )
        except Exception as exc:
            raise ProviderAssessmentError(
                f"Assessment of provider {provider.id} failed: {exc}", provider_id=provider.id
            ) from exc
        return ProviderAssessmentRecord(
            provider_id=provider.id,
            provider_type=provider.type,
            audit=audit,
            compliance=assessments,
            scan=scan,
        )

    async def _fan_out(
        self,
        providers: list[Provider],
        frameworks: list[str],
        include_compliance: list[str] | None,
        depth: str,
        timeout: float | None,
    ) -> list[ProviderAssessmentRecord | BaseException] | None:
        """Assess providers concurrently. Returns None when the deadline expires."""
        tasks = [
            asyncio.create_task(self._assess_one(p, frameworks, include_compliance, depth))
            for p in providers
        ]
        try:
            async with asyncio.timeout(timeout):
                return list(await asyncio.gather(*tasks, return_exceptions=True))
        except TimeoutError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            return None

    async def assess_provider_security(
        self,
        providers: Iterable[Provider | dict],
        *,
        include_compliance: Iterable[str] | None = None,
        depth: str = DEFAULT_DEPTH,
        generate_reports: bool = False,
        auto_remediate: bool = False,
        timeout: float | None = None,
    ) -> SecurityDashboard:
        """Assess a provider batch and record one dashboard.

        Each provider gets a validator audit, one compliance assessment per
        framework and a vulnerability scan. A provider whose assessment fails
        is recorded as a synthetic critical status with a critical alert; the
        rest of the batch continues.

        Args:
            providers: Provider models or ``{id, type, instance, config}`` dicts.
            include_compliance: Frameworks to assess (default GDPR and SOC2).
            depth: Scan depth: surface, deep or comprehensive.
            generate_reports: Persist a comprehensive SecurityReport.
            auto_remediate: Execute eligible remediation tasks when
                ``automation.auto_remediation`` is also enabled.
            timeout: Deadline in seconds for the fan-out. On expiry every
                provider is recorded as synthetic critical and the dashboard
                is marked degraded.

        Returns:
            The recorded SecurityDashboard.

        Raises:
            ConfigurationError: Unknown framework, unknown depth or duplicate
                provider id.
            ReportPersistenceError: The report could not be written. The
                dashboard is attached and remains in history.
        """
        batch = [p if isinstance(p, Provider) else Provider.model_validate(p) for p in providers]
        explicit = list(include_compliance) if include_compliance is not None else None
        frameworks = explicit if explicit is not None else list(DEFAULT_FRAMEWORKS)
        self._validate_request(batch, frameworks, depth)
        if timeout is None:
            timeout = self.settings.assessment_timeout

        run_id = str(uuid.uuid4())
        logger.info("Starting security assessment %s for %d providers", run_id, len(batch))
        await self.bus.publish("assessment-started", {
            "run_id": run_id,
            "provider_ids": [p.id for p in batch],
            "frameworks": frameworks,
            "depth": depth,
        })

        outcomes = await self._fan_out(batch, frameworks, explicit, depth, timeout)
        degraded = outcomes is None
        if degraded:
            logger.error("Security assessment %s timed out after %ss", run_id, timeout)
            outcomes = [
                ProviderAssessmentError(f"Assessment timed out after {timeout}s", provider_id=p.id)
                for p in batch
            ]

        now = datetime.now(UTC)
        history = list(self._history)
        statuses = []
        alerts: list[SecurityAlert] = []
        tasks: list[SecurityTask] = []
        records: list[ProviderAssessmentRecord] = []
        for provider, outcome in zip(batch, outcomes):
            if isinstance(outcome, BaseException):
                error = str(outcome)
                logger.warning("Provider %s assessment failed: %s", provider.id, error)
                await self.bus.publish("assessment-error", {
                    "run_id": run_id, "provider_id": provider.id, "error": error,
                })
                statuses.append(aggregation.synthetic_status(provider.id, provider.type, error, now))
                alerts.append(aggregation.synthetic_alert(provider.id, error, now))
                records.append(ProviderAssessmentRecord(
                    provider_id=provider.id, provider_type=provider.type, error=error,
                ))
                continue
            trends = aggregation.compute_trends(history, provider.id)
            statuses.append(aggregation.provider_status(
                provider.id, provider.type, outcome.audit, outcome.compliance, outcome.scan,
                self.config.thresholds, trends, now,
            ))
            alerts.extend(aggregation.generate_alerts(provider.id, outcome.audit, outcome.compliance, outcome.scan, now))
            tasks.extend(aggregation.generate_tasks(provider.id, outcome.audit, outcome.compliance, outcome.scan, now))
            records.append(outcome)

        score = aggregation.overall_score(statuses)
        async with self._lock:
            dashboard = SecurityDashboard(
                timestamp=now,
                overall_posture=aggregation.determine_posture(score, alerts),
                overall_score=score,
                providers=statuses,
                trends=aggregation.fleet_trends(statuses, self._incidents, now),
                alerts=[a.model_copy(deep=True) for a in alerts],
                recommendations=aggregation.fleet_recommendations(statuses, alerts),
                upcoming_tasks=[t.model_copy(deep=True) for t in tasks],
                degraded=degraded,
            )
            self._history.append(HistoryEntry(timestamp=now, dashboard=dashboard))
            self._alerts.extend(alerts)
            self._prune(self._alerts, lambda a: a.resolved)
            self._tasks.extend(tasks)
            self.assessments_run += 1
            report = None
            if generate_reports:
                report = build_security_report(
                    dashboard, records, self._incidents, tasks, self._history, self.config
                )

        persistence_error: ReportPersistenceError | None = None
        if report is not None:
            try:
                if inspect.iscoroutinefunction(self.storage.save_report):
                    path = await self.storage.save_report(report, "comprehensive")
                else:
                    path = await asyncio.to_thread(self.storage.save_report, report, "comprehensive")
                    if inspect.isawaitable(path):
                        path = await path
            except Exception as exc:
                logger.error("Failed to persist security report %s: %s", report.id, exc)
                persistence_error = ReportPersistenceError(
                    f"Failed to persist security report: {exc}",
                    dashboard=dashboard,
                    details={"report_id": report.id},
                )
                persistence_error.__cause__ = exc
            else:
                await self.bus.publish("comprehensive-report-generated", {
                    "report_id": report.id,
                    "path": path,
                    "summary": report.executive_summary,
                })

        if auto_remediate and self.config.automation.auto_remediation:
            await self.execute_auto_remediation(tasks)

        logger.info(
            "Security assessment %s completed: score=%.1f posture=%s alerts=%d tasks=%d",
            run_id, dashboard.overall_score, dashboard.overall_posture, len(alerts), len(tasks),
        )
        await self.bus.publish("assessment-completed", dashboard)
        if persistence_error is not None:
            raise persistence_error
        return dashboard

    # -- auto-remediation --------------------------------------------------------

    @staticmethod
    def eligible_for_auto_remediation(task: SecurityTask) -> bool:
        return task.type == "remediation" and task.priority != "critical" and not task.dependencies

    async def execute_auto_remediation(self, tasks: Sequence[SecurityTask]) -> list[SecurityTask]:
        """Run eligible tasks through the remediator.

        Returns:
            The tasks that were executed, with their final status.
        """
        executed: list[SecurityTask] = []
        for task in tasks:
            if not self.eligible_for_auto_remediation(task):
                continue
            error: str | None = None
            try:
                result = self.remediator(task)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                error = str(exc)
                logger.error("Auto-remediation of task %s failed: %s", task.id, exc)

            now = datetime.now(UTC)
            async with self._lock:
                task.status = "failed" if error else "completed"
                for incident in self._incidents:
                    if incident.provider_id == task.provider_id and incident.status not in INACTIVE_INCIDENT_STATES:
                        self._append_timeline(
                            incident,
                            "Auto-remediation failed" if error else "Auto-remediation completed",
                            "SecurityOrchestrator",
                            f"{task.title}: {error}" if error else task.title,
                            now,
                        )
                snapshot = task.model_copy(deep=True)
            executed.append(task)
            if error:
                await self.bus.publish("auto-remediation-failed", {"task": snapshot, "error": error})
            else:
                await self.bus.publish("auto-remediation-completed", {"task": snapshot})
        return executed

    # -- escalation -------------------------------------------------------------

    async def _on_audit_completed(self, topic: str, result: Any) -> None:
        if result.risk_level == "critical":
            await self._handle_critical_finding(
                CriticalFinding(type="security", provider_id=result.provider_id, details=result)
            )

    async def _on_compliance_assessment(self, topic: str, assessment: Any) -> None:
        if assessment.overall_status == "non_compliant":
            await self._handle_critical_finding(
                CriticalFinding(type="compliance", provider_id=assessment.provider_id, details=assessment)
            )

    async def _on_scan_completed(self, topic: str, result: Any) -> None:
        if result.summary.critical > 0:
            await self._handle_critical_finding(
                CriticalFinding(type="vulnerability", provider_id=result.provider_id, details=result)
            )

    def _should_trigger_emergency_shutdown(self, finding: CriticalFinding) -> bool:
        if not self.config.automation.emergency_shutdown:
            return False
        details = finding.details
        if finding.type == "security":
            return details.risk_level == "critical"
        if finding.type == "compliance":
            return details.overall_status == "non_compliant"
        return details.summary.critical > self.config.thresholds.critical_vulnerabilities

    @staticmethod
    def _describe_finding(finding: CriticalFinding) -> str:
        details = finding.details
        if finding.type == "security":
            critical = sum(1 for v in details.violations if v.severity == "critical")
            return f"Security audit found {critical} critical violations (score {details.overall_score:.0f})"
        if finding.type == "compliance":
            return f"Provider is non-compliant with {details.framework_id} ({len(details.gaps)} gaps)"
        return f"Vulnerability scan found {details.summary.critical} critical vulnerabilities"

    async def _handle_critical_finding(self, finding: CriticalFinding) -> None:
        logger.warning("Critical %s finding for provider %s", finding.type, finding.provider_id)
        await self.bus.publish("critical-finding", finding)

        description = self._describe_finding(finding)
        reporter = FINDING_REPORTERS[finding.type]
        async with self._lock:
            now = datetime.now(UTC)
            incident = SecurityIncident(
                severity="critical",
                category=FINDING_CATEGORIES[finding.type],
                provider_id=finding.provider_id,
                title=f"Critical {finding.type} finding: {finding.provider_id}",
                description=description,
                detected_at=now,
                reported_by=reporter,
                affected_systems=[finding.provider_id],
                timeline=[IncidentTimelineEntry(
                    timestamp=now, action="Incident created", performer=reporter, notes=description,
                )],
            )
            self._incidents.append(incident)
            self._prune(self._incidents, lambda i: i.status in INACTIVE_INCIDENT_STATES)
            snapshot = incident.model_copy(deep=True)
            shutdown = self._should_trigger_emergency_shutdown(finding)
            notify = self.config.automation.auto_notification
        await self.bus.publish("incident-created", snapshot)

        if shutdown:
            logger.error("EMERGENCY SHUTDOWN triggered for provider %s", finding.provider_id)
            await self.bus.publish("emergency-shutdown-triggered", {
                "provider_id": finding.provider_id,
                "finding": finding,
                "incident_id": snapshot.id,
            })
        if notify:
            await self.bus.publish("critical-alert-sent", CriticalAlertNotification(
                subject=f"CRITICAL SECURITY ALERT: {finding.provider_id}",
                body=description,
                finding=finding,
            ))

    # -- mutation API ----------------------------------------------------------

    def _prune(self, items: list, removable: Callable[[Any], bool]) -> None:
        """Drop the oldest removable entries while the list exceeds the retention limit."""
        excess = len(items) - self.history_limit
        if excess <= 0:
            return
        drop = set()
        for index, item in enumerate(items):
            if len(drop) >= excess:
                break
            if removable(item):
                drop.add(index)
        items[:] = [item for index, item in enumerate(items) if index not in drop]

    @staticmethod
    def _append_timeline(
        incident: SecurityIncident, action: str, performer: str, notes: str | None, now: datetime
    ) -> None:
        if incident.timeline and incident.timeline[-1].timestamp > now:
            now = incident.timeline[-1].timestamp
        incident.timeline.append(IncidentTimelineEntry(timestamp=now, action=action, performer=performer, notes=notes))

    def _find(self, items: Iterable, item_id: str) -> Any:
        return next((item for item in items if item.id == item_id), None)

    async def acknowledge_alert(self, alert_id: str, acknowledged_by: str) -> bool:
        """Acknowledge an alert. Returns False for an unknown id; repeats are no-ops."""
        async with self._lock:
            alert = self._find(self._alerts, alert_id)
            if alert is None:
                return False
            if alert.acknowledged:
                return True
            alert.acknowledged = True
            alert.acknowledged_at = datetime.now(UTC)
            alert.assignee = alert.assignee or acknowledged_by
            snapshot = alert.model_copy(deep=True)
        await self.bus.publish("alert-acknowledged", {"alert": snapshot, "acknowledged_by": acknowledged_by})
        return True

    async def resolve_alert(self, alert_id: str, resolved_by: str, notes: str | None = None) -> bool:
        """Resolve an alert, acknowledging it if needed. Returns False for an unknown id."""
        async with self._lock:
            alert = self._find(self._alerts, alert_id)
            if alert is None:
                return False
            if alert.resolved:
                return True
            now = datetime.now(UTC)
            if not alert.acknowledged:
                alert.acknowledged = True
                alert.acknowledged_at = now
            alert.resolved = True
            alert.resolved_at = now
            alert.resolution_notes = notes
            alert.assignee = alert.assignee or resolved_by
            snapshot = alert.model_copy(deep=True)
        await self.bus.publish("alert-resolved", {"alert": snapshot, "resolved_by": resolved_by})
        return True

    async def update_incident_status(
        self, incident_id: str, status: IncidentStatus, updated_by: str, notes: str | None = None
    ) -> bool:
        """Move an incident forward along open → investigating → contained → resolved → closed.

        Skipping states is allowed. Returns False for an unknown id.

        Raises:
            ConfigurationError: If ``status`` is not a known incident state.
            IncidentTransitionError: If the move is backwards or repeats the
                current state.
        """
        if status not in INCIDENT_ORDER:
            raise ConfigurationError(f"Unknown incident status: {status}", details={"status": status})
        async with self._lock:
            incident = self._find(self._incidents, incident_id)
            if incident is None:
                return False
            previous = incident.status
            if INCIDENT_ORDER[status] <= INCIDENT_ORDER[previous]:
                raise IncidentTransitionError(
                    f"Incident {incident_id} cannot move from {previous} to {status}",
                    details={"incident_id": incident_id, "from": previous, "to": status},
                )
            incident.status = status
            self._append_timeline(
                incident, f"Status changed from {previous} to {status}", updated_by, notes, datetime.now(UTC)
            )
            snapshot = incident.model_copy(deep=True)
        logger.info("Incident %s moved from %s to %s by %s", incident_id, previous, status, updated_by)
        await self.bus.publish("incident-updated", snapshot)
        return True

    async def add_incident_note(self, incident_id: str, author: str, notes: str) -> bool:
        async with self._lock:
            incident = self._find(self._incidents, incident_id)
            if incident is None:
                return False
            self._append_timeline(incident, "Note added", author, notes, datetime.now(UTC))
            snapshot = incident.model_copy(deep=True)
        await self.bus.publish("incident-updated", snapshot)
        return True

    async def update_configuration(self, updates: dict[str, Any]) -> OrchestrationConfig:
        """Deep-merge ``updates`` into the policy and validate the result.

        Raises:
            ConfigurationError: If the merged configuration is invalid.
        """
        async with self._lock:
            try:
                new_config = self.config.merged(updates)
            except ValidationError as exc:
                raise ConfigurationError(
                    f"Invalid configuration update: {exc.error_count()} errors",
                    details={"errors": exc.errors(include_url=False, include_context=False)},
                ) from exc
            schedule_changed = new_config.audit_schedule != self.config.audit_schedule
            self.config = new_config
            snapshot = new_config.model_copy(deep=True)
        if schedule_changed:
            await self.scheduler.reschedule(snapshot.audit_schedule)
        logger.info("Security configuration updated: %s", sorted(updates))
        await self.bus.publish("configuration-updated", {"configuration": snapshot, "changes": updates})
        return snapshot

    # Registry mutations are synchronous and every audit snapshots the
    # registry before evaluating, so a change applies from the next audit on.

    async def add_custom_rule(self, rule: SecurityRule) -> None:
        await self.validator.add_custom_rule(rule)

    async def remove_rule(self, rule_id: str) -> bool:
        return await self.validator.remove_rule(rule_id)

    async def update_rule(self, rule_id: str, **changes: Any) -> SecurityRule:
        return await self.validator.update_rule(rule_id, **changes)

    # -- read API ---------------------------------------------------------------

    def get_current_dashboard(self) -> SecurityDashboard | None:
        if not self._history:
            return None
        return self._history[-1].dashboard.model_copy(deep=True)

    def get_security_history(
        self, days: int | None = None, *, limit: int | None = None, offset: int = 0
    ) -> list[HistoryEntry]:
        """History entries, newest first, optionally restricted to the last ``days``."""
        entries = list(reversed(self._history))
        if days is not None:
            cutoff = datetime.now(UTC) - timedelta(days=days)
            entries = [e for e in entries if e.timestamp >= cutoff]
        end = None if limit is None else offset + limit
        return [e.model_copy(deep=True) for e in entries[offset:end]]

    def get_active_incidents(self) -> list[SecurityIncident]:
        return [
            i.model_copy(deep=True) for i in self._incidents if i.status not in INACTIVE_INCIDENT_STATES
        ]

    def get_pending_alerts(self, *, limit: int | None = None, offset: int = 0) -> list[SecurityAlert]:
        """Unresolved alerts, most severe first, then oldest first."""
        pending = sorted(
            (a for a in self._alerts if not a.resolved),
            key=lambda a: (SEVERITY_ORDER[a.severity], a.timestamp),
        )
        end = None if limit is None else offset + limit
        return [a.model_copy(deep=True) for a in pending[offset:end]]

    def get_upcoming_tasks(self) -> list[SecurityTask]:
        pending = sorted((t for t in self._tasks if t.status == "pending"), key=lambda t: t.scheduled_date)
        return [t.model_copy(deep=True) for t in pending]

    def get_configuration(self) -> OrchestrationConfig:
        return self.config.model_copy(deep=True)

    def get_system_health(self) -> dict:
        dashboard = self._history[-1].dashboard if self._history else None
        if dashboard is None:
            status = "unknown"
        elif dashboard.degraded or dashboard.overall_posture == "critical":
            status = "critical"
        elif dashboard.overall_posture == "poor" or any(not p.assessed for p in dashboard.providers):
            status = "degraded"
        else:
            status = "healthy"
        return {
            "status": status,
            "last_assessment": dashboard.timestamp.isoformat() if dashboard else None,
            "overall_posture": dashboard.overall_posture if dashboard else None,
            "overall_score": dashboard.overall_score if dashboard else None,
            "assessments_run": self.assessments_run,
            "components": {
                "rules": len(self.validator.registry),
                "frameworks": len(self.compliance_checker.list_frameworks()),
                "scan_checks": len(self.scanner.checks),
                "scheduler_running": self.scheduler.running,
                "scheduler_ticks": dict(self.scheduler.ticks),
            },
            "counts": {
                "history": len(self._history),
                "pending_alerts": sum(1 for a in self._alerts if not a.resolved),
                "active_incidents": sum(1 for i in self._incidents if i.status not in INACTIVE_INCIDENT_STATES),
                "pending_tasks": sum(1 for t in self._tasks if t.status == "pending"),
            },
        }
