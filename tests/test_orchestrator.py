"""Tests for fleet assessment in the SecurityOrchestrator."""

from __future__ import annotations

import asyncio
import threading
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest

from provider_security.config import SecuritySettings
from provider_security.events import EventBus
from provider_security.exceptions import ConfigurationError, ReportPersistenceError
from provider_security.models import SecurityReport, SecurityTask
from provider_security.orchestrator import SecurityOrchestrator
from provider_security.storage import ReportStorage


class _SlowInstance:
    async def security_probe(self) -> list:
        await asyncio.sleep(5)
        return []


class _FailingSink:
    def save_report(self, report: Any, kind: str) -> str:
        raise OSError("disk full")


class _RejectingObjectStore:
    def save_report(self, report: Any, kind: str) -> str:
        raise RuntimeError("object store rejected upload")


class _RecordingSink:
    def __init__(self) -> None:
        self.threads: list[int] = []

    def save_report(self, report: Any, kind: str) -> str:
        self.threads.append(threading.get_ident())
        return f"memory://{kind}/{report.id}"


class _AsyncSink:
    def __init__(self) -> None:
        self.saved: list[str] = []

    async def save_report(self, report: Any, kind: str) -> str:
        self.saved.append(report.id)
        return f"bucket://{kind}/{report.id}"


def _task(priority: str = "high", dependencies: list[str] | None = None, task_type: str = "remediation") -> SecurityTask:
    return SecurityTask(
        type=task_type, provider_id="idp", title=f"{priority} fix", description="apply fix",
        priority=priority, estimated_duration=30, dependencies=dependencies or [],
    )


def _topics(event_log: list[tuple[str, Any]]) -> list[str]:
    return [topic for topic, _ in event_log]


class TestAssessProviderSecurity:
    @pytest.mark.asyncio
    async def test_clean_provider(
        self, orchestrator: SecurityOrchestrator, event_log: list[tuple[str, Any]], secure_config: dict
    ) -> None:
        dashboard = await orchestrator.assess_provider_security(
            [{"id": "db-1", "type": "database", "config": secure_config}]
        )
        [status] = dashboard.providers
        assert status.security_score == 100
        assert status.compliance_score == 100
        assert status.vulnerability_risk_score == 0
        assert status.status == "secure"
        assert dashboard.overall_score == 100.0
        assert dashboard.overall_posture == "excellent"
        assert dashboard.alerts == []
        assert dashboard.upcoming_tasks == []
        assert dashboard.degraded is False
        assert orchestrator.get_active_incidents() == []

        topics = _topics(event_log)
        assert topics[0] == "assessment-started"
        assert topics[-1] == "assessment-completed"
        assert topics.count("compliance-assessment-completed") == 2

    @pytest.mark.asyncio
    async def test_missing_auth_controls(
        self, orchestrator: SecurityOrchestrator, auth_without_controls: dict
    ) -> None:
        dashboard = await orchestrator.assess_provider_security(
            [{"id": "idp", "type": "authentication", "config": auth_without_controls}],
            include_compliance=[],
        )
        [status] = dashboard.providers
        assert status.security_score == 40
        assert status.status == "critical"
        assert status.critical_issues == 1
        assert status.high_issues == 1
        assert dashboard.overall_score == 76.0
        assert dashboard.overall_posture == "critical"

        assert len(dashboard.alerts) == 2
        for alert in dashboard.alerts:
            assert alert.due_date - alert.timestamp == timedelta(hours=24)
        assert [t.estimated_duration for t in dashboard.upcoming_tasks] == [120, 120]

        pending = orchestrator.get_pending_alerts()
        assert [a.severity for a in pending] == ["critical", "high"]

    @pytest.mark.asyncio
    async def test_invalid_requests_fail_fast(
        self, orchestrator: SecurityOrchestrator, event_log: list[tuple[str, Any]], secure_config: dict
    ) -> None:
        provider = {"id": "db-1", "type": "database", "config": secure_config}
        with pytest.raises(ConfigurationError):
            await orchestrator.assess_provider_security([provider, provider])
        with pytest.raises(ConfigurationError):
            await orchestrator.assess_provider_security([provider], include_compliance=["ISO27001"])
        with pytest.raises(ConfigurationError):
            await orchestrator.assess_provider_security([provider], depth="exhaustive")
        assert event_log == []
        assert orchestrator.get_current_dashboard() is None

    @pytest.mark.asyncio
    async def test_failed_provider_is_isolated(
        self,
        orchestrator: SecurityOrchestrator,
        event_log: list[tuple[str, Any]],
        secure_config: dict,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        original = orchestrator.scanner.scan_provider

        async def flaky(provider_id: str, *args: Any, **kwargs: Any):
            if provider_id == "bad":
                raise RuntimeError("scanner crashed")
            return await original(provider_id, *args, **kwargs)

        monkeypatch.setattr(orchestrator.scanner, "scan_provider", flaky)
        dashboard = await orchestrator.assess_provider_security([
            {"id": "good", "type": "database", "config": secure_config},
            {"id": "bad", "type": "database", "config": secure_config},
        ])
        good, bad = dashboard.providers
        assert good.status == "secure"
        assert bad.assessed is False
        assert bad.security_score == 0
        assert bad.vulnerability_risk_score == 100
        assert "scanner crashed" in bad.error
        [alert] = dashboard.alerts
        assert alert.provider_id == "bad"
        assert alert.severity == "critical"
        assert alert.due_date is None
        assert dashboard.overall_score == 50.0
        assert dashboard.overall_posture == "critical"

        [(_, error_event)] = [(t, p) for t, p in event_log if t == "assessment-error"]
        assert error_event["provider_id"] == "bad"
        assert orchestrator.get_system_health()["status"] == "critical"

    @pytest.mark.asyncio
    async def test_timeout_records_degraded_dashboard(self, orchestrator: SecurityOrchestrator) -> None:
        dashboard = await orchestrator.assess_provider_security(
            [{"id": "slow", "type": "cache", "instance": _SlowInstance(), "config": {}}],
            include_compliance=[],
            depth="comprehensive",
            timeout=0.05,
        )
        assert dashboard.degraded is True
        [status] = dashboard.providers
        assert status.assessed is False
        assert "timed out" in status.error
        assert orchestrator.get_current_dashboard().id == dashboard.id

    @pytest.mark.asyncio
    async def test_empty_fleet(self, orchestrator: SecurityOrchestrator) -> None:
        dashboard = await orchestrator.assess_provider_security([])
        assert dashboard.overall_score == 0.0
        assert dashboard.providers == []


class TestHistoryAndTrends:
    @pytest.mark.asyncio
    async def test_trend_between_runs(
        self, orchestrator: SecurityOrchestrator, auth_without_controls: dict, secure_config: dict
    ) -> None:
        runs = []
        for config in (auth_without_controls, secure_config, secure_config):
            runs.append(await orchestrator.assess_provider_security(
                [{"id": "idp", "type": "authentication", "config": config}], include_compliance=[]
            ))
        first, second, third = runs
        # trends compare the two most recent snapshots already in history
        assert first.providers[0].trends.security_score_trend == "stable"
        assert second.providers[0].trends.security_score_trend == "stable"
        assert third.providers[0].trends.security_score_trend == "improving"

        history = orchestrator.get_security_history()
        assert [e.dashboard.id for e in history] == [third.id, second.id, first.id]
        assert [e.dashboard.id for e in orchestrator.get_security_history(limit=1, offset=1)] == [second.id]
        assert len(orchestrator.get_security_history(days=1)) == 3

    @pytest.mark.asyncio
    async def test_history_is_bounded(
        self, security_settings: SecuritySettings, bus: EventBus, report_storage: ReportStorage, secure_config: dict
    ) -> None:
        orch = SecurityOrchestrator(settings=security_settings, bus=bus, storage=report_storage, history_limit=2)
        for _ in range(3):
            await orch.assess_provider_security([{"id": "db", "type": "database", "config": secure_config}])
        assert len(orch.get_security_history()) == 2
        assert orch.get_system_health()["assessments_run"] == 3

    @pytest.mark.asyncio
    async def test_dashboard_reads_are_copies(self, orchestrator: SecurityOrchestrator, auth_without_controls: dict) -> None:
        await orchestrator.assess_provider_security(
            [{"id": "idp", "type": "authentication", "config": auth_without_controls}], include_compliance=[]
        )
        alerts = orchestrator.get_pending_alerts()
        alerts[0].resolved = True
        assert len(orchestrator.get_pending_alerts()) == 2
        assert len(orchestrator.get_pending_alerts(limit=1, offset=1)) == 1


class TestReports:
    @pytest.mark.asyncio
    async def test_report_round_trip(
        self,
        orchestrator: SecurityOrchestrator,
        event_log: list[tuple[str, Any]],
        report_storage: ReportStorage,
        auth_without_controls: dict,
    ) -> None:
        dashboard = await orchestrator.assess_provider_security(
            [{"id": "idp", "type": "authentication", "config": auth_without_controls}],
            include_compliance=["SOC2"],
            generate_reports=True,
        )
        [(_, event)] = [(t, p) for t, p in event_log if t == "comprehensive-report-generated"]
        assert Path(event["path"]).exists()

        report = report_storage.load_report(event["report_id"])
        assert isinstance(report, SecurityReport)
        assert report.executive_summary == event["summary"]
        assert report.executive_summary.total_alerts == len(dashboard.alerts)
        assert report.dashboard.id == dashboard.id
        assert report.detailed_assessments[0].audit.overall_score == 40
        assert len(report.incidents) == 2
        assert report.remediation_plans[0].provider_id == "idp"
        assert report.configuration == orchestrator.get_configuration()

    @pytest.mark.asyncio
    async def test_persistence_failure_keeps_dashboard(
        self,
        security_settings: SecuritySettings,
        bus: EventBus,
        event_log: list[tuple[str, Any]],
        secure_config: dict,
    ) -> None:
        orch = SecurityOrchestrator(settings=security_settings, bus=bus, storage=_FailingSink())
        with pytest.raises(ReportPersistenceError) as exc_info:
            await orch.assess_provider_security(
                [{"id": "db", "type": "database", "config": secure_config}], generate_reports=True
            )
        assert exc_info.value.dashboard is not None
        assert orch.get_current_dashboard().id == exc_info.value.dashboard.id
        assert _topics(event_log)[-1] == "assessment-completed"
        assert "comprehensive-report-generated" not in _topics(event_log)

    @pytest.mark.asyncio
    async def test_any_sink_error_is_wrapped(
        self,
        security_settings: SecuritySettings,
        bus: EventBus,
        event_log: list[tuple[str, Any]],
        auth_without_controls: dict,
    ) -> None:
        orch = SecurityOrchestrator(
            {"automation": {"auto_remediation": True}},
            settings=security_settings, bus=bus, storage=_RejectingObjectStore(),
        )
        with pytest.raises(ReportPersistenceError) as exc_info:
            await orch.assess_provider_security(
                [{"id": "idp", "type": "authentication", "config": auth_without_controls}],
                include_compliance=[], generate_reports=True, auto_remediate=True,
            )
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "object store rejected upload" in str(exc_info.value)
        assert exc_info.value.dashboard.id == orch.get_current_dashboard().id
        topics = _topics(event_log)
        assert "auto-remediation-completed" in topics
        assert topics[-1] == "assessment-completed"

    @pytest.mark.asyncio
    async def test_sync_sink_runs_off_the_event_loop(
        self, security_settings: SecuritySettings, bus: EventBus, secure_config: dict
    ) -> None:
        sink = _RecordingSink()
        orch = SecurityOrchestrator(settings=security_settings, bus=bus, storage=sink)
        await orch.assess_provider_security(
            [{"id": "db", "type": "database", "config": secure_config}], generate_reports=True
        )
        assert len(sink.threads) == 1
        assert sink.threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_async_sink_is_awaited(
        self,
        security_settings: SecuritySettings,
        bus: EventBus,
        event_log: list[tuple[str, Any]],
        secure_config: dict,
    ) -> None:
        sink = _AsyncSink()
        orch = SecurityOrchestrator(settings=security_settings, bus=bus, storage=sink)
        await orch.assess_provider_security(
            [{"id": "db", "type": "database", "config": secure_config}], generate_reports=True
        )
        [(_, payload)] = [(t, p) for t, p in event_log if t == "comprehensive-report-generated"]
        assert sink.saved == [payload["report_id"]]
        assert payload["path"] == f"bucket://comprehensive/{payload['report_id']}"


class TestAutoRemediation:
    @pytest.mark.asyncio
    async def test_only_eligible_task_runs(
        self, orchestrator: SecurityOrchestrator, event_log: list[tuple[str, Any]]
    ) -> None:
        critical = _task("critical")
        blocked = _task("high", dependencies=["other-task"])
        eligible = _task("medium")
        executed = await orchestrator.execute_auto_remediation([critical, blocked, eligible])
        assert executed == [eligible]
        assert eligible.status == "completed"
        assert critical.status == "pending"
        assert blocked.status == "pending"
        assert _topics(event_log) == ["auto-remediation-completed"]

    def test_eligibility(self) -> None:
        assert SecurityOrchestrator.eligible_for_auto_remediation(_task("high")) is True
        assert SecurityOrchestrator.eligible_for_auto_remediation(_task("low", task_type="compliance_check")) is False

    @pytest.mark.asyncio
    async def test_failing_remediator(
        self,
        security_settings: SecuritySettings,
        bus: EventBus,
        event_log: list[tuple[str, Any]],
        report_storage: ReportStorage,
    ) -> None:
        async def remediator(task: SecurityTask) -> None:
            raise RuntimeError("api down")

        orch = SecurityOrchestrator(settings=security_settings, bus=bus, storage=report_storage, remediator=remediator)
        task = _task("high")
        await orch.execute_auto_remediation([task])
        assert task.status == "failed"
        [(_, payload)] = [(t, p) for t, p in event_log if t == "auto-remediation-failed"]
        assert payload["error"] == "api down"

    @pytest.mark.asyncio
    async def test_assessment_with_auto_remediation(
        self,
        security_settings: SecuritySettings,
        bus: EventBus,
        report_storage: ReportStorage,
        auth_without_controls: dict,
    ) -> None:
        remediated: list[str] = []
        orch = SecurityOrchestrator(
            {"automation": {"auto_remediation": True}},
            settings=security_settings,
            bus=bus,
            storage=report_storage,
            remediator=lambda task: remediated.append(task.title),
        )
        dashboard = await orch.assess_provider_security(
            [{"id": "idp", "type": "authentication", "config": auth_without_controls}],
            include_compliance=[],
            auto_remediate=True,
        )
        assert remediated == ["Fix Security Violation: AUTH_001"]
        assert all(t.status == "pending" for t in dashboard.upcoming_tasks)
        assert [t.priority for t in orch.get_upcoming_tasks()] == ["critical"]
        [incident] = orch.get_active_incidents()
        assert incident.timeline[-1].action == "Auto-remediation completed"

    @pytest.mark.asyncio
    async def test_auto_remediation_requires_policy(
        self, orchestrator: SecurityOrchestrator, auth_without_controls: dict
    ) -> None:
        await orchestrator.assess_provider_security(
            [{"id": "idp", "type": "authentication", "config": auth_without_controls}],
            include_compliance=[],
            auto_remediate=True,
        )
        assert len(orchestrator.get_upcoming_tasks()) == 2


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_scheduler_start_and_shutdown(
        self, security_settings: SecuritySettings, bus: EventBus, event_log: list[tuple[str, Any]], report_storage: ReportStorage
    ) -> None:
        orch = SecurityOrchestrator(
            settings=security_settings, bus=bus, storage=report_storage,
            scheduler_intervals={"security": 0.01, "compliance": 0.01, "vulnerability": 0.01},
        )
        orch.start()
        await asyncio.sleep(0.05)
        assert orch.get_system_health()["components"]["scheduler_running"] is True
        await orch.shutdown()
        assert orch.scheduler.running is False
        assert "scheduled-security-audit" in _topics(event_log)

    def test_health_before_any_assessment(self, orchestrator: SecurityOrchestrator) -> None:
        health = orchestrator.get_system_health()
        assert health["status"] == "unknown"
        assert health["components"]["rules"] == 11
        assert health["components"]["frameworks"] == 5
        assert health["counts"]["history"] == 0

    @pytest.mark.asyncio
    async def test_close_detaches_escalation(
        self, orchestrator: SecurityOrchestrator, auth_without_controls: dict
    ) -> None:
        orchestrator.close()
        await orchestrator.assess_provider_security(
            [{"id": "idp", "type": "authentication", "config": auth_without_controls}], include_compliance=[]
        )
        assert orchestrator.get_active_incidents() == []
