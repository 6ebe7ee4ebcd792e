"""Alert and incident response MCP tools."""

from __future__ import annotations

from provider_security.exceptions import ConfigurationError
from provider_security.orchestrator import SecurityOrchestrator


def list_pending_alerts(orchestrator: SecurityOrchestrator, limit: int = 50, offset: int = 0) -> dict:
    alerts = orchestrator.get_pending_alerts(limit=limit, offset=offset)
    return {
        "count": len(alerts),
        "offset": offset,
        "alerts": [a.model_dump(mode="json") for a in alerts],
    }


async def acknowledge_alert(orchestrator: SecurityOrchestrator, alert_id: str, acknowledged_by: str) -> dict:
    if not await orchestrator.acknowledge_alert(alert_id, acknowledged_by):
        return {"status": "error", "message": f"Alert {alert_id} not found"}
    return {"status": "acknowledged", "alert_id": alert_id}


async def resolve_alert(
    orchestrator: SecurityOrchestrator, alert_id: str, resolved_by: str, notes: str | None = None
) -> dict:
    if not await orchestrator.resolve_alert(alert_id, resolved_by, notes):
        return {"status": "error", "message": f"Alert {alert_id} not found"}
    return {"status": "resolved", "alert_id": alert_id}


def list_active_incidents(orchestrator: SecurityOrchestrator) -> dict:
    incidents = orchestrator.get_active_incidents()
    return {
        "count": len(incidents),
        "incidents": [i.model_dump(mode="json") for i in incidents],
    }


async def update_incident(
    orchestrator: SecurityOrchestrator,
    incident_id: str,
    updated_by: str,
    status: str | None = None,
    notes: str | None = None,
) -> dict:
    """Advance an incident's status and/or append a note to its timeline."""
    if status is None and not notes:
        return {"status": "error", "message": "Either status or notes is required"}
    try:
        if status is not None:
            found = await orchestrator.update_incident_status(incident_id, status, updated_by, notes)
        else:
            found = await orchestrator.add_incident_note(incident_id, updated_by, notes)
    except ConfigurationError as exc:
        return {"status": "error", "message": str(exc), "details": exc.details}
    if not found:
        return {"status": "error", "message": f"Incident {incident_id} not found"}
    return {"status": "updated", "incident_id": incident_id}
