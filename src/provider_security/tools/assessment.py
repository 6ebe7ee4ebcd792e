"""Assessment MCP tools.

Runs fleet assessments and exposes the dashboard, history and health views
as JSON-ready dicts.
"""

from __future__ import annotations

from provider_security.exceptions import ConfigurationError, ReportPersistenceError
from provider_security.orchestrator import SecurityOrchestrator


def _dashboard_summary(dashboard) -> dict:
    return {
        "dashboard_id": dashboard.id,
        "timestamp": dashboard.timestamp.isoformat(),
        "overall_posture": dashboard.overall_posture,
        "overall_score": dashboard.overall_score,
        "degraded": dashboard.degraded,
        "providers": [
            {
                "provider_id": p.provider_id,
                "status": p.status,
                "security_score": p.security_score,
                "compliance_score": p.compliance_score,
                "vulnerability_risk_score": p.vulnerability_risk_score,
                "assessed": p.assessed,
            }
            for p in dashboard.providers
        ],
        "alert_count": len(dashboard.alerts),
        "task_count": len(dashboard.upcoming_tasks),
        "recommendations": dashboard.recommendations,
    }


async def run_security_assessment(
    orchestrator: SecurityOrchestrator,
    providers: list[dict],
    include_compliance: list[str] | None = None,
    depth: str = "deep",
    generate_reports: bool = False,
    auto_remediate: bool = False,
) -> dict:
    """Assess a batch of providers described as ``{id, type, config}`` dicts.

    Returns:
        Dashboard summary dict, or an error dict for invalid input.
    """
    try:
        dashboard = await orchestrator.assess_provider_security(
            providers,
            include_compliance=include_compliance,
            depth=depth,
            generate_reports=generate_reports,
            auto_remediate=auto_remediate,
        )
    except ConfigurationError as exc:
        return {"status": "error", "message": str(exc), "details": exc.details}
    except ReportPersistenceError as exc:
        result = _dashboard_summary(exc.dashboard)
        result["report_error"] = str(exc)
        return result
    return _dashboard_summary(dashboard)


def get_dashboard(orchestrator: SecurityOrchestrator) -> dict:
    dashboard = orchestrator.get_current_dashboard()
    if dashboard is None:
        return {"status": "empty", "message": "No assessment has been run yet"}
    return dashboard.model_dump(mode="json")


def get_security_history(
    orchestrator: SecurityOrchestrator,
    days: int | None = None,
    limit: int = 10,
    offset: int = 0,
) -> dict:
    """Return paginated dashboard summaries, newest first."""
    entries = orchestrator.get_security_history(days, limit=limit, offset=offset)
    return {
        "count": len(entries),
        "offset": offset,
        "entries": [
            {
                "timestamp": e.timestamp.isoformat(),
                "dashboard_id": e.dashboard.id,
                "overall_posture": e.dashboard.overall_posture,
                "overall_score": e.dashboard.overall_score,
                "providers": len(e.dashboard.providers),
                "degraded": e.dashboard.degraded,
            }
            for e in entries
        ],
    }
