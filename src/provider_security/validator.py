"""Security validator that runs the rule registry against providers.

The SecurityValidator snapshots the registry per audit run, evaluates each
rule, isolates rule failures, scores the violations and keeps a bounded
audit history.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from provider_security.events import EventBus
from provider_security.exceptions import ConfigurationError, RuleEvaluationError
from provider_security.models import AuditReport, AuditReportSummary, AuditResult, Provider, Violation
from provider_security.rules import RuleRegistry, SecurityRule
from provider_security.scoring import SecurityScorer
from provider_security.storage import ReportSink

logger = logging.getLogger(__name__)

NEXT_AUDIT_INTERVAL = timedelta(days=30)


class SecurityValidator:
    """Audits providers against the registered security rules."""

    def __init__(
        self,
        bus: EventBus,
        registry: RuleRegistry | None = None,
        storage: ReportSink | None = None,
        history_limit: int = 500,
    ) -> None:
        self.bus = bus
        self.registry = registry if registry is not None else RuleRegistry()
        self.storage = storage
        self.scorer = SecurityScorer()
        self._history: deque[AuditResult] = deque(maxlen=history_limit)

    async def _evaluate_rule(self, rule: SecurityRule, provider: Provider, config: dict[str, Any]) -> list[Violation]:
        try:
            return await rule.evaluate(provider, config)
        except Exception as exc:
            raise RuleEvaluationError(
                f"Rule {rule.id} failed: {exc}", rule_id=rule.id, provider_id=provider.id
            ) from exc

    async def audit_provider(
        self,
        provider_id: str,
        provider_type: str,
        instance: Any,
        config: dict[str, Any],
        *,
        include_compliance: Iterable[str] | None = None,
        severity_filter: Iterable[str] | None = None,
        category_filter: Iterable[str] | None = None,
    ) -> AuditResult:
        """Run every registered rule against one provider.

        A rule that raises contributes no violations; the failure is logged,
        published as ``audit-error`` and recorded in ``rule_errors``.

        Args:
            provider_id: Identifier of the provider being audited.
            provider_type: Provider kind (database, authentication, ...).
            instance: Opaque provider handle passed to rule checks.
            config: Provider configuration inspected by the rules.
            include_compliance: Frameworks to flag; defaults to all five.
            severity_filter: Only evaluate rules of these severities.
            category_filter: Only evaluate rules of these categories.

        Returns:
            The AuditResult, also appended to the audit history.
        """
        provider = Provider(id=provider_id, type=provider_type, instance=instance, config=config)
        severities = set(severity_filter) if severity_filter else None
        categories = set(category_filter) if category_filter else None

        violations: list[Violation] = []
        rule_errors: list[str] = []
        for rule in self.registry.snapshot():
            if severities is not None and rule.severity not in severities:
                continue
            if categories is not None and rule.category not in categories:
                continue
            try:
                violations.extend(await self._evaluate_rule(rule, provider, config))
            except RuleEvaluationError as exc:
                logger.error("Rule %s failed on provider %s: %s", exc.rule_id, provider_id, exc)
                rule_errors.append(exc.rule_id)
                await self.bus.publish(
                    "audit-error",
                    {"provider_id": provider_id, "rule_id": exc.rule_id, "error": str(exc)},
                )

        now = datetime.now(UTC)
        result = AuditResult(
            provider_id=provider_id,
            provider_type=provider_type,
            timestamp=now,
            overall_score=self.scorer.calculate_score(violations),
            risk_level=self.scorer.risk_level(violations),
            violations=violations,
            compliance=self.scorer.compliance_flags(violations, include_compliance),
            recommendations=self.scorer.recommendations(violations),
            rule_errors=rule_errors,
            next_audit_date=now + NEXT_AUDIT_INTERVAL,
        )
        self._history.append(result)
        logger.info(
            "Audited provider %s: score=%.1f risk=%s violations=%d",
            provider_id, result.overall_score, result.risk_level, len(violations),
        )
        await self.bus.publish("audit-completed", result)
        return result

    async def audit_all_providers(
        self,
        providers: list[Provider],
        *,
        include_compliance: Iterable[str] | None = None,
        parallel: bool = False,
        generate_report: bool = False,
    ) -> list[AuditResult]:
        """Audit several providers, optionally in parallel, optionally persisting a report.

        Raises:
            ConfigurationError: If a report is requested without storage.
        """
        if generate_report and self.storage is None:
            raise ConfigurationError("Report generation requires a storage backend")
        frameworks = list(include_compliance) if include_compliance is not None else None

        def audit(p: Provider):
            return self.audit_provider(p.id, p.type, p.instance, p.config, include_compliance=frameworks)

        if parallel:
            results = list(await asyncio.gather(*(audit(p) for p in providers)))
        else:
            results = [await audit(p) for p in providers]

        if generate_report:
            report = self.build_report(results)
            path = self.storage.save_report(report, "audit")
            if inspect.isawaitable(path):
                path = await path
            await self.bus.publish("report-generated", {"report": report, "path": path})
        return results

    @staticmethod
    def build_report(results: list[AuditResult]) -> AuditReport:
        """Summarise a multi-provider audit."""
        frameworks: list[str] = []
        for result in results:
            frameworks.extend(fw for fw in result.compliance if fw not in frameworks)
        recommendations = sorted({rec for r in results for rec in r.recommendations})
        average = sum(r.overall_score for r in results) / len(results) if results else 0.0
        return AuditReport(
            summary=AuditReportSummary(
                total_providers=len(results),
                average_score=round(average, 2),
                critical_violations=sum(1 for r in results for v in r.violations if v.severity == "critical"),
                high_violations=sum(1 for r in results for v in r.violations if v.severity == "high"),
                compliance_status={fw: all(r.compliance.get(fw, True) for r in results) for fw in frameworks},
            ),
            providers=results,
            recommendations=recommendations,
        )

    # -- rule management ---------------------------------------------------

    async def add_custom_rule(self, rule: SecurityRule) -> None:
        replaced = self.registry.add(rule)
        logger.info("%s rule %s", "Replaced" if replaced else "Added", rule.id)
        await self.bus.publish("rule-added", rule)

    async def remove_rule(self, rule_id: str) -> bool:
        removed = self.registry.remove(rule_id)
        if removed:
            logger.info("Removed rule %s", rule_id)
            await self.bus.publish("rule-removed", {"rule_id": rule_id})
        return removed

    async def update_rule(self, rule_id: str, **changes: Any) -> SecurityRule:
        updated = self.registry.update(rule_id, **changes)
        await self.bus.publish("rule-updated", updated)
        return updated

    def get_rule(self, rule_id: str) -> SecurityRule | None:
        return self.registry.get(rule_id)

    def list_rules(self, category: str | None = None) -> list[SecurityRule]:
        return self.registry.list_rules(category)

    # -- history -------------------------------------------------------------

    def get_audit_history(self, provider_id: str | None = None) -> list[AuditResult]:
        history = list(self._history)
        if provider_id:
            history = [r for r in history if r.provider_id == provider_id]
        return history

    def latest_audit(self, provider_id: str) -> AuditResult | None:
        for result in reversed(self._history):
            if result.provider_id == provider_id:
                return result
        return None
