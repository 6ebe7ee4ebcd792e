"""FastMCP server entry point for the provider security orchestrator.

Registers all MCP tools and starts the server. Providers are supplied by
the caller on each assessment; the server keeps one orchestrator whose
dashboard, alert, incident and task state lives for the process lifetime.
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from provider_security.config import SecuritySettings, get_settings
from provider_security.notifications import WebhookNotifier
from provider_security.orchestrator import SecurityOrchestrator
from provider_security.tools.assessment import get_dashboard, get_security_history, run_security_assessment
from provider_security.tools.governance import (
    get_configuration,
    list_compliance_frameworks,
    list_security_rules,
    update_configuration,
)
from provider_security.tools.response import (
    acknowledge_alert,
    list_active_incidents,
    list_pending_alerts,
    resolve_alert,
    update_incident,
)

logger = logging.getLogger(__name__)

mcp = FastMCP("provider-security")

# Module-level singletons initialized on first tool call
_settings: SecuritySettings | None = None
_orchestrator: SecurityOrchestrator | None = None


def _get_orchestrator() -> SecurityOrchestrator:
    """Lazily initialize and return the shared orchestrator."""
    global _settings, _orchestrator  # noqa: PLW0603
    if _orchestrator is None:
        _settings = get_settings()
        _orchestrator = SecurityOrchestrator(settings=_settings)
        notifier = WebhookNotifier.from_settings(_settings)
        if notifier is not None:
            notifier.attach(_orchestrator.bus, _orchestrator.get_configuration)
    return _orchestrator


@mcp.tool()
async def security_assess(
    providers: list[dict],
    include_compliance: list[str] | None = None,
    depth: str = "deep",
    generate_reports: bool = False,
    auto_remediate: bool = False,
) -> dict:
    """Assess providers ({id, type, config}) for violations, compliance gaps, and vulnerabilities."""
    if not providers:
        return {"status": "error", "message": "At least one provider is required"}
    return await run_security_assessment(
        _get_orchestrator(), providers,
        include_compliance=include_compliance, depth=depth,
        generate_reports=generate_reports, auto_remediate=auto_remediate,
    )


@mcp.tool()
def security_dashboard() -> dict:
    """Return the most recent fleet security dashboard."""
    return get_dashboard(_get_orchestrator())


@mcp.tool()
def security_history(days: int | None = None, limit: int = 10, offset: int = 0) -> dict:
    """Retrieve past dashboards, newest first, for trend analysis."""
    return get_security_history(_get_orchestrator(), days=days, limit=limit, offset=offset)


@mcp.tool()
def alerts_pending(limit: int = 50, offset: int = 0) -> dict:
    """List unresolved security alerts, most severe first."""
    return list_pending_alerts(_get_orchestrator(), limit=limit, offset=offset)


@mcp.tool()
async def alert_acknowledge(alert_id: str = "", acknowledged_by: str = "") -> dict:
    """Acknowledge a security alert."""
    if not alert_id or not acknowledged_by:
        return {"status": "error", "message": "Both alert_id and acknowledged_by are required"}
    return await acknowledge_alert(_get_orchestrator(), alert_id, acknowledged_by)


@mcp.tool()
async def alert_resolve(alert_id: str = "", resolved_by: str = "", notes: str | None = None) -> dict:
    """Resolve a security alert with optional resolution notes."""
    if not alert_id or not resolved_by:
        return {"status": "error", "message": "Both alert_id and resolved_by are required"}
    return await resolve_alert(_get_orchestrator(), alert_id, resolved_by, notes)


@mcp.tool()
def incidents_active() -> dict:
    """List open security incidents."""
    return list_active_incidents(_get_orchestrator())


@mcp.tool()
async def incident_update(
    incident_id: str = "",
    updated_by: str = "",
    status: str | None = None,
    notes: str | None = None,
) -> dict:
    """Advance an incident's status (forward only) or add a timeline note."""
    if not incident_id or not updated_by:
        return {"status": "error", "message": "Both incident_id and updated_by are required"}
    return await update_incident(_get_orchestrator(), incident_id, updated_by, status=status, notes=notes)


@mcp.tool()
def security_rules(category: str | None = None) -> dict:
    """List registered security rules with optional category filter."""
    return list_security_rules(_get_orchestrator(), category=category)


@mcp.tool()
def compliance_frameworks() -> dict:
    """List compliance frameworks and their rule mappings."""
    return list_compliance_frameworks(_get_orchestrator())


@mcp.tool()
def configuration_get() -> dict:
    """Return the current security orchestration policy."""
    return get_configuration(_get_orchestrator())


@mcp.tool()
async def configuration_update(updates: dict) -> dict:
    """Deep-merge a partial policy update (schedules, thresholds, automation, notifications)."""
    return await update_configuration(_get_orchestrator(), updates)


@mcp.tool()
def health_check() -> dict:
    """Report orchestrator health and component status."""
    try:
        return _get_orchestrator().get_system_health()
    except Exception as exc:
        return {"status": "unhealthy", "error": str(exc)}


def main() -> None:
    """Entry point for the provider-security MCP server."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.info("Starting provider-security MCP server")
    mcp.run()
