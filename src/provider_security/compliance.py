"""Compliance framework assessment on top of validator output.

Each framework lists requirements; each requirement maps to a subset of
security rule ids. A requirement passes when none of its rules produced a
violation for the provider. Assessments reuse the validator's latest audit
instead of re-running rule callbacks.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from provider_security.events import EventBus
from provider_security.exceptions import ConfigurationError
from provider_security.models import (
    AuditResult,
    CertificationStatus,
    ComplianceAssessment,
    ComplianceEvidence,
    ComplianceFramework,
    ComplianceGap,
    ComplianceRequirement,
    ComplianceStatus,
    GapRemediation,
    RequirementResult,
)
from provider_security.scoring import SecurityScorer
from provider_security.validator import SecurityValidator

logger = logging.getLogger(__name__)

GAP_TIMELINE_DAYS: dict[str, int] = {"critical": 7, "high": 14, "medium": 30, "low": 60}

CATEGORY_STEPS: dict[str, list[str]] = {
    "technical": [
        "Review and update technical security controls",
        "Implement automated compliance monitoring",
    ],
    "administrative": [
        "Update policies and procedures",
        "Conduct staff training and awareness programs",
    ],
    "physical": [
        "Review physical security controls",
        "Update access control systems",
    ],
}


def _req(req_id: str, title: str, description: str, severity: str, rule_ids: list[str], mandatory: bool = True) -> ComplianceRequirement:
    return ComplianceRequirement(
        id=req_id,
        title=title,
        description=description,
        category="technical",
        mandatory=mandatory,
        severity=severity,
        rule_ids=rule_ids,
    )


def default_frameworks() -> list[ComplianceFramework]:
    """Return fresh instances of the built-in frameworks."""
    return [
        ComplianceFramework(
            id="GDPR",
            name="General Data Protection Regulation",
            version="2018",
            description="EU regulation on data protection and privacy",
            jurisdiction=["EU", "EEA"],
            audit_frequency_days=365,
            certification_required=False,
            requirements=[
                _req("GDPR_ART_5", "Principles relating to processing of personal data",
                     "Personal data must be identified and processed lawfully, fairly and transparently",
                     "high", ["DATA_001"]),
                _req("GDPR_ART_25", "Data protection by design and by default",
                     "Pseudonymise and minimise personal data where possible",
                     "medium", ["DATA_002"], mandatory=False),
                _req("GDPR_ART_32", "Security of processing",
                     "Encrypt personal data at rest and in transit",
                     "critical", ["ENC_001", "ENC_002"]),
            ],
        ),
        ComplianceFramework(
            id="SOC2",
            name="Service Organization Control 2",
            version="2017",
            description="Service Organization Control 2 Type II audit",
            jurisdiction=["US", "Global"],
            audit_frequency_days=365,
            certification_required=True,
            requirements=[
                _req("SOC2_CC6_1", "Logical and Physical Access Controls",
                     "The entity implements logical and physical access controls",
                     "critical", ["AUTH_001", "AUTH_002", "NET_001"]),
                _req("SOC2_CC7_1", "System Operations",
                     "Configuration is monitored for insecure settings and exposed secrets",
                     "high", ["CFG_001", "CFG_002"]),
            ],
        ),
        ComplianceFramework(
            id="PCI",
            name="Payment Card Industry Data Security Standard",
            version="4.0",
            description="Security standards for payment card data protection",
            jurisdiction=["US", "Global"],
            audit_frequency_days=365,
            certification_required=True,
            requirements=[
                _req("PCI_REQ_1", "Install and maintain network security controls",
                     "Restrict network access to cardholder data environments", "high", ["NET_001"]),
                _req("PCI_REQ_3", "Protect stored cardholder data",
                     "Protect stored account data through encryption", "critical", ["ENC_001"]),
                _req("PCI_REQ_4", "Protect cardholder data in transit",
                     "Encrypt transmission of cardholder data over open networks", "critical", ["ENC_002"]),
                _req("PCI_REQ_6", "Develop and maintain secure systems",
                     "Protect against injection and other common attacks", "critical", ["VAL_001"]),
                _req("PCI_REQ_8", "Identify users and authenticate access",
                     "Strong authentication for all access to system components", "high",
                     ["AUTH_001", "AUTH_002"]),
            ],
        ),
        ComplianceFramework(
            id="HIPAA",
            name="Health Insurance Portability and Accountability Act",
            version="2013",
            description="US security rule for electronic protected health information",
            jurisdiction=["US"],
            audit_frequency_days=365,
            certification_required=False,
            requirements=[
                _req("HIPAA_164_312_A", "Access control",
                     "Unique user identification and strong authentication", "critical", ["AUTH_002"]),
                _req("HIPAA_164_312_E", "Transmission security",
                     "Guard against unauthorized access to ePHI in transit", "critical", ["ENC_002"]),
                _req("HIPAA_164_312_C", "Integrity",
                     "Protect ePHI from improper alteration or destruction", "high",
                     ["ENC_001", "DATA_001"]),
            ],
        ),
        ComplianceFramework(
            id="CCPA",
            name="California Consumer Privacy Act",
            version="2020",
            description="California regulation on consumer personal information",
            jurisdiction=["US-CA"],
            audit_frequency_days=365,
            certification_required=False,
            requirements=[
                _req("CCPA_1798_100", "Consumer right to know",
                     "Personal information collected must be identified", "high", ["DATA_001"]),
                _req("CCPA_1798_150", "Reasonable security",
                     "Personal information must be protected by reasonable security", "critical", ["ENC_001"]),
                _req("CCPA_1798_140", "Deidentified information",
                     "Deidentify personal information used for analytics", "medium", ["DATA_002"],
                     mandatory=False),
            ],
        ),
    ]


class ComplianceChecker:
    """Assesses providers against compliance frameworks."""

    def __init__(
        self,
        bus: EventBus,
        validator: SecurityValidator,
        frameworks: Iterable[ComplianceFramework] | None = None,
        history_limit: int = 500,
    ) -> None:
        self.bus = bus
        self.validator = validator
        self.scorer = SecurityScorer()
        self._frameworks: dict[str, ComplianceFramework] = {
            fw.id: fw for fw in (default_frameworks() if frameworks is None else frameworks)
        }
        self._history: deque[ComplianceAssessment] = deque(maxlen=history_limit)

    def require_framework(self, framework_id: str) -> ComplianceFramework:
        framework = self._frameworks.get(framework_id)
        if framework is None:
            raise ConfigurationError(
                f"Unknown compliance framework: {framework_id}",
                details={"framework_id": framework_id, "known": sorted(self._frameworks)},
            )
        return framework

    async def assess_compliance(
        self,
        framework_id: str,
        provider_id: str,
        instance: Any,
        config: dict[str, Any],
        *,
        provider_type: str = "unknown",
        audit: AuditResult | None = None,
        requirement_ids: Iterable[str] | None = None,
    ) -> ComplianceAssessment:
        """Assess one provider against one framework.

        Args:
            framework_id: Registered framework id (GDPR, SOC2, ...).
            provider_id: Provider identifier.
            instance: Opaque provider handle, used only if an audit must be run.
            config: Provider configuration, used only if an audit must be run.
            provider_type: Provider kind, used only if an audit must be run.
            audit: Validator output to reuse. Defaults to the latest audit for
                the provider; a fresh audit is run only when none exists.
            requirement_ids: Restrict the assessment to these requirements.

        Raises:
            ConfigurationError: If the framework is unknown.
        """
        framework = self.require_framework(framework_id)
        if audit is None:
            audit = self.validator.latest_audit(provider_id)
        if audit is None:
            audit = await self.validator.audit_provider(provider_id, provider_type, instance, config)

        wanted = set(requirement_ids) if requirement_ids is not None else None
        requirements = [r for r in framework.requirements if wanted is None or r.id in wanted]

        results: list[RequirementResult] = []
        gaps: list[ComplianceGap] = []
        evidence: list[ComplianceEvidence] = []
        now = datetime.now(UTC)
        for requirement in requirements:
            matched = [v for v in audit.violations if v.rule_id in requirement.rule_ids]
            result = self._requirement_result(requirement, matched)
            results.append(result)
            if result.passed:
                evidence.append(
                    ComplianceEvidence(
                        description=f"{requirement.title}: rules {', '.join(requirement.rule_ids)} passed",
                        location=f"provider:{provider_id}",
                        timestamp=now,
                    )
                )
            else:
                gaps.append(self._gap(requirement, result, matched))

        overall_status = self._overall_status(requirements, results)
        overall_score = sum(r.score for r in results) / len(results) if results else 100.0
        assessment = ComplianceAssessment(
            framework_id=framework.id,
            provider_id=provider_id,
            audit_id=audit.id,
            timestamp=now,
            overall_status=overall_status,
            overall_score=round(overall_score, 2),
            requirement_results=results,
            gaps=gaps,
            evidence=evidence,
            certification_status=self._certification_status(framework, overall_status, overall_score),
            next_assessment_date=now + timedelta(days=framework.audit_frequency_days),
        )
        self._history.append(assessment)
        logger.info(
            "Compliance %s for provider %s: %s (%.1f)",
            framework.id, provider_id, overall_status, assessment.overall_score,
        )
        await self.bus.publish("compliance-assessment-completed", assessment)
        return assessment

    def _requirement_result(self, requirement: ComplianceRequirement, matched: list) -> RequirementResult:
        score = self.scorer.calculate_score(matched)
        passed = not matched
        status: ComplianceStatus
        if passed:
            status = "compliant"
        elif requirement.mandatory or score < 50:
            status = "non_compliant"
        else:
            status = "partial"
        return RequirementResult(
            requirement_id=requirement.id,
            status=status,
            passed=passed,
            score=score,
            violated_rules=sorted({v.rule_id for v in matched}),
            findings=[v.message for v in matched],
        )

    @staticmethod
    def _overall_status(
        requirements: list[ComplianceRequirement], results: list[RequirementResult]
    ) -> ComplianceStatus:
        if all(r.status == "compliant" for r in results):
            return "compliant"
        mandatory = {req.id for req in requirements if req.mandatory}
        if any(r.status == "non_compliant" and r.requirement_id in mandatory for r in results):
            return "non_compliant"
        if any(r.status != "non_compliant" for r in results):
            return "partial"
        return "non_compliant"

    @staticmethod
    def _certification_status(
        framework: ComplianceFramework, status: ComplianceStatus, score: float
    ) -> CertificationStatus:
        if not framework.certification_required:
            return "not_applicable"
        if status == "compliant" and score >= 90:
            return "certified"
        if status == "partial" and score >= 70:
            return "pending"
        return "expired"

    @staticmethod
    def _impact(requirement: ComplianceRequirement, score: float) -> str:
        if requirement.mandatory and score < 50:
            return (
                "Critical compliance failure may result in regulatory action, significant fines, "
                "and loss of certification"
            )
        if score < 70:
            return "Moderate compliance gap may impact certification and increase regulatory scrutiny"
        return "Minor compliance gap with limited operational impact"

    @staticmethod
    def _cost(requirement: ComplianceRequirement, score: float) -> str:
        if requirement.category == "physical" or score < 30:
            return "high"
        if requirement.category == "technical" or score < 60:
            return "medium"
        return "low"

    @staticmethod
    def _priority(requirement: ComplianceRequirement, score: float) -> int:
        priority = 5
        if requirement.mandatory:
            priority += 3
        if score < 30:
            priority += 2
        elif score < 60:
            priority += 1
        if requirement.category == "technical":
            priority += 1
        return min(10, priority)

    def _gap(self, requirement: ComplianceRequirement, result: RequirementResult, matched: list) -> ComplianceGap:
        steps: list[str] = []
        for violation in matched:
            candidates = list(violation.remediation.steps) if violation.remediation else []
            candidates.append(violation.recommendation)
            steps.extend(s for s in candidates if s not in steps)
        steps.extend(s for s in CATEGORY_STEPS[requirement.category] if s not in steps)
        return ComplianceGap(
            requirement_id=requirement.id,
            severity=requirement.severity,
            description=f"{requirement.title}: {'; '.join(result.findings)}",
            impact=self._impact(requirement, result.score),
            remediation=GapRemediation(
                steps=steps,
                timeline=GAP_TIMELINE_DAYS[requirement.severity],
                cost=self._cost(requirement, result.score),
                priority=self._priority(requirement, result.score),
            ),
        )

    # -- framework management -----------------------------------------------

    async def add_custom_framework(self, framework: ComplianceFramework) -> None:
        self._frameworks[framework.id] = framework
        logger.info("Registered compliance framework %s", framework.id)
        await self.bus.publish("framework-added", framework)

    async def update_framework(self, framework_id: str, **changes: Any) -> ComplianceFramework:
        current = self.require_framework(framework_id)
        updated = ComplianceFramework.model_validate({**current.model_dump(), **changes, "id": framework_id})
        self._frameworks[framework_id] = updated
        await self.bus.publish("framework-updated", updated)
        return updated

    async def remove_framework(self, framework_id: str) -> bool:
        removed = self._frameworks.pop(framework_id, None) is not None
        if removed:
            await self.bus.publish("framework-removed", {"framework_id": framework_id})
        return removed

    def get_framework(self, framework_id: str) -> ComplianceFramework | None:
        return self._frameworks.get(framework_id)

    def list_frameworks(self) -> list[ComplianceFramework]:
        return list(self._frameworks.values())

    def get_assessment_history(
        self, provider_id: str | None = None, framework_id: str | None = None
    ) -> list[ComplianceAssessment]:
        history = list(self._history)
        if provider_id:
            history = [a for a in history if a.provider_id == provider_id]
        if framework_id:
            history = [a for a in history if a.framework_id == framework_id]
        return history

    @staticmethod
    def generate_compliance_report(assessments: list[ComplianceAssessment]) -> dict:
        """Summarise assessments with next steps and consolidated recommendations."""
        gaps = [g for a in assessments for g in a.gaps]
        pending = sum(1 for a in assessments if a.certification_status == "pending")

        next_steps: list[str] = []
        critical = sum(1 for g in gaps if g.severity == "critical")
        if critical:
            next_steps.append(f"Address {critical} critical compliance gaps immediately")
        high_priority = sum(1 for g in gaps if g.remediation.priority >= 8)
        if high_priority:
            next_steps.append(f"Plan remediation for {high_priority} high-priority gaps")
        if pending:
            next_steps.append(f"Complete certification requirements for {pending} frameworks")
        next_steps.extend([
            "Schedule regular compliance assessments",
            "Implement continuous compliance monitoring",
            "Update compliance documentation and procedures",
        ])

        return {
            "generated_at": datetime.now(UTC).isoformat(),
            "summary": {
                "total_assessments": len(assessments),
                "compliant_providers": sum(1 for a in assessments if a.overall_status == "compliant"),
                "average_score": (
                    round(sum(a.overall_score for a in assessments) / len(assessments), 2) if assessments else 0.0
                ),
                "critical_gaps": critical,
                "certification_status": {
                    "certified": sum(1 for a in assessments if a.certification_status == "certified"),
                    "pending": pending,
                    "expired": sum(1 for a in assessments if a.certification_status == "expired"),
                },
            },
            "assessments": [
                {
                    "framework_id": a.framework_id,
                    "provider_id": a.provider_id,
                    "timestamp": a.timestamp.isoformat(),
                    "overall_status": a.overall_status,
                    "overall_score": a.overall_score,
                    "certification_status": a.certification_status,
                    "gap_count": len(a.gaps),
                }
                for a in assessments
            ],
            "recommendations": sorted({s for g in gaps for s in g.remediation.steps}),
            "next_steps": next_steps,
        }
