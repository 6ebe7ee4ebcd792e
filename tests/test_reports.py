"""Tests for comprehensive report assembly."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from provider_security.config import OrchestrationConfig
from provider_security.models import (
    HistoryEntry,
    SecurityAlert,
    SecurityDashboard,
    SecurityIncident,
    SecurityTask,
)
from provider_security.reports import build_executive_summary, build_remediation_plans, build_security_report

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _task(provider_id: str, priority: str, status: str = "pending", minutes: int = 60) -> SecurityTask:
    return SecurityTask(
        type="remediation", provider_id=provider_id, title=f"{priority} task", description="do it",
        priority=priority, estimated_duration=minutes, status=status,
    )


def _incident(days_ago: int, status: str = "open") -> SecurityIncident:
    return SecurityIncident(
        severity="critical", category="breach", provider_id="p", title="t", description="d",
        detected_at=NOW - timedelta(days=days_ago), status=status,
    )


def _dashboard() -> SecurityDashboard:
    return SecurityDashboard(
        timestamp=NOW,
        overall_posture="critical",
        overall_score=42.0,
        alerts=[
            SecurityAlert(severity="critical", type="incident", provider_id="p", title="t", description="d"),
            SecurityAlert(severity="high", type="incident", provider_id="p", title="t", description="d"),
        ],
        recommendations=[f"rec {i}" for i in range(8)],
    )


class TestRemediationPlans:
    def test_one_plan_per_provider_sorted(self) -> None:
        tasks = [_task("a", "medium"), _task("a", "critical", status="completed"), _task("b", "high")]
        plans = build_remediation_plans(tasks, NOW)
        assert [p.provider_id for p in plans] == ["a", "b"]
        plan = plans[0]
        assert [i.priority for i in plan.items] == ["critical", "medium"]
        assert plan.priority == "critical"
        assert plan.estimated_minutes == 120
        assert plan.progress_pct == 50.0
        assert plan.status == "active"

    def test_completed_plan(self) -> None:
        [plan] = build_remediation_plans([_task("a", "high", status="completed")], NOW)
        assert plan.status == "completed"
        assert plan.progress_pct == 100.0

    def test_no_tasks(self) -> None:
        assert build_remediation_plans([], NOW) == []


class TestSecurityReport:
    def test_executive_summary(self) -> None:
        summary = build_executive_summary(_dashboard(), open_incidents=3)
        assert summary.critical_alerts == 1
        assert summary.high_alerts == 1
        assert summary.total_alerts == 2
        assert summary.open_incidents == 3
        assert len(summary.key_recommendations) == 5

    def test_report_windows(self) -> None:
        dashboard = _dashboard()
        incidents = [_incident(1), _incident(10, status="closed"), _incident(45)]
        history = [HistoryEntry(timestamp=NOW - timedelta(hours=n), dashboard=dashboard) for n in range(20)]
        report = build_security_report(dashboard, [], incidents, [], history, OrchestrationConfig())
        assert report.generated_at == NOW
        assert len(report.incidents) == 2
        assert report.executive_summary.open_incidents == 2
        assert len(report.historical_trends) == 12
        assert report.historical_trends[-1] == history[-1]

    def test_report_copies_configuration(self) -> None:
        config = OrchestrationConfig()
        report = build_security_report(_dashboard(), [], [], [], [], config)
        config.thresholds.security_score = 10
        assert report.configuration.thresholds.security_score == 80
