"""Rule, framework and policy configuration MCP tools."""

from __future__ import annotations

from provider_security.exceptions import ConfigurationError
from provider_security.orchestrator import SecurityOrchestrator


def list_security_rules(orchestrator: SecurityOrchestrator, category: str | None = None) -> dict:
    """List registered security rules with an optional category filter."""
    rules = orchestrator.validator.list_rules(category)
    return {
        "total": len(rules),
        "category_filter": category,
        "rules": [r.model_dump() for r in rules],
    }


def list_compliance_frameworks(orchestrator: SecurityOrchestrator) -> dict:
    frameworks = orchestrator.compliance_checker.list_frameworks()
    return {
        "total": len(frameworks),
        "frameworks": [
            {
                "id": fw.id,
                "name": fw.name,
                "version": fw.version,
                "certification_required": fw.certification_required,
                "requirements": [
                    {"id": r.id, "title": r.title, "mandatory": r.mandatory, "rule_ids": r.rule_ids}
                    for r in fw.requirements
                ],
            }
            for fw in frameworks
        ],
    }


def get_configuration(orchestrator: SecurityOrchestrator) -> dict:
    return orchestrator.get_configuration().model_dump()


async def update_configuration(orchestrator: SecurityOrchestrator, updates: dict) -> dict:
    try:
        config = await orchestrator.update_configuration(updates)
    except ConfigurationError as exc:
        return {"status": "error", "message": str(exc), "details": exc.details}
    return {"status": "updated", "configuration": config.model_dump()}
