"""Report assembly for comprehensive security reports.

Builds the executive summary, per-provider remediation plans and the full
SecurityReport handed to the persistence collaborator.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

from provider_security.config import OrchestrationConfig
from provider_security.models import (
    SEVERITY_ORDER,
    ExecutiveSummary,
    HistoryEntry,
    ProviderAssessmentRecord,
    RemediationItem,
    RemediationPlan,
    SecurityDashboard,
    SecurityIncident,
    SecurityReport,
    SecurityTask,
)

REPORT_INCIDENT_WINDOW = timedelta(days=30)
REPORT_HISTORY_ENTRIES = 12
KEY_RECOMMENDATIONS = 5


def build_executive_summary(dashboard: SecurityDashboard, open_incidents: int) -> ExecutiveSummary:
    return ExecutiveSummary(
        overall_posture=dashboard.overall_posture,
        overall_score=dashboard.overall_score,
        total_providers=len(dashboard.providers),
        critical_alerts=sum(1 for a in dashboard.alerts if a.severity == "critical"),
        high_alerts=sum(1 for a in dashboard.alerts if a.severity == "high"),
        total_alerts=len(dashboard.alerts),
        upcoming_tasks=len(dashboard.upcoming_tasks),
        open_incidents=open_incidents,
        key_recommendations=dashboard.recommendations[:KEY_RECOMMENDATIONS],
    )


def build_remediation_plans(tasks: Sequence[SecurityTask], now: datetime) -> list[RemediationPlan]:
    """Group tasks into one plan per provider, items sorted by priority."""
    by_provider: dict[str, list[SecurityTask]] = {}
    for task in tasks:
        by_provider.setdefault(task.provider_id, []).append(task)

    plans: list[RemediationPlan] = []
    for provider_id, provider_tasks in by_provider.items():
        items = [
            RemediationItem(
                task_id=t.id,
                title=t.title,
                priority=t.priority,
                action=t.description,
                estimated_duration=t.estimated_duration,
                status=t.status,
            )
            for t in provider_tasks
        ]
        items.sort(key=lambda item: SEVERITY_ORDER.get(item.priority, 4))
        done = sum(1 for i in items if i.status == "completed")
        plans.append(RemediationPlan(
            provider_id=provider_id,
            created_at=now,
            items=items,
            priority=items[0].priority,
            estimated_minutes=sum(i.estimated_duration for i in items),
            status="completed" if done == len(items) else "active",
            progress_pct=round(done / len(items) * 100, 2),
        ))
    return plans


def build_security_report(
    dashboard: SecurityDashboard,
    records: list[ProviderAssessmentRecord],
    incidents: Sequence[SecurityIncident],
    tasks: Sequence[SecurityTask],
    history: Sequence[HistoryEntry],
    configuration: OrchestrationConfig,
) -> SecurityReport:
    """Assemble the comprehensive report for one assessment run."""
    now = dashboard.timestamp
    recent_incidents = [i for i in incidents if i.detected_at >= now - REPORT_INCIDENT_WINDOW]
    open_incidents = sum(1 for i in incidents if i.status not in ("resolved", "closed"))
    return SecurityReport(
        generated_at=now,
        executive_summary=build_executive_summary(dashboard, open_incidents),
        dashboard=dashboard,
        detailed_assessments=records,
        incidents=[i.model_copy(deep=True) for i in recent_incidents],
        remediation_plans=build_remediation_plans(tasks, now),
        historical_trends=list(history)[-REPORT_HISTORY_ENTRIES:],
        configuration=configuration.model_copy(deep=True),
    )
