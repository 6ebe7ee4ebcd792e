"""Tests for compliance framework assessment."""

from __future__ import annotations

from typing import Any

import pytest

from provider_security.compliance import GAP_TIMELINE_DAYS, ComplianceChecker, default_frameworks
from provider_security.events import EventBus
from provider_security.exceptions import ConfigurationError
from provider_security.models import ComplianceFramework, ComplianceRequirement
from provider_security.validator import SecurityValidator


def _checker(bus: EventBus) -> ComplianceChecker:
    return ComplianceChecker(bus, SecurityValidator(bus))


class TestDefaultFrameworks:
    def test_builtin_ids(self) -> None:
        assert [fw.id for fw in default_frameworks()] == ["GDPR", "SOC2", "PCI", "HIPAA", "CCPA"]

    def test_certification_required(self) -> None:
        required = {fw.id for fw in default_frameworks() if fw.certification_required}
        assert required == {"SOC2", "PCI"}


class TestAssessCompliance:
    @pytest.mark.asyncio
    async def test_unknown_framework(self, bus: EventBus) -> None:
        with pytest.raises(ConfigurationError):
            await _checker(bus).assess_compliance("ISO27001", "db-1", None, {})

    @pytest.mark.asyncio
    async def test_compliant_provider_collects_evidence(self, bus: EventBus, secure_config: dict) -> None:
        assessment = await _checker(bus).assess_compliance(
            "SOC2", "db-1", None, secure_config, provider_type="database"
        )
        assert assessment.overall_status == "compliant"
        assert assessment.overall_score == 100.0
        assert assessment.gaps == []
        assert len(assessment.evidence) == 2
        assert assessment.certification_status == "certified"

    @pytest.mark.asyncio
    async def test_non_compliant_gap(self, bus: EventBus, auth_without_controls: dict) -> None:
        assessment = await _checker(bus).assess_compliance(
            "SOC2", "idp", None, auth_without_controls, provider_type="authentication"
        )
        assert assessment.overall_status == "non_compliant"
        assert assessment.certification_status == "expired"
        [gap] = assessment.gaps
        assert gap.requirement_id == "SOC2_CC6_1"
        assert gap.severity == "critical"
        assert gap.remediation.timeline == GAP_TIMELINE_DAYS["critical"]
        # mandatory (+3), score 40 (+1), technical (+1)
        assert gap.remediation.priority == 10
        assert gap.remediation.cost == "medium"
        assert "Review and update technical security controls" in gap.remediation.steps
        [cc6] = [r for r in assessment.requirement_results if r.requirement_id == "SOC2_CC6_1"]
        assert cc6.violated_rules == ["AUTH_001", "AUTH_002"]
        assert cc6.score == 40.0

    @pytest.mark.asyncio
    async def test_optional_requirement_is_partial(self, bus: EventBus, secure_config: dict) -> None:
        config = {k: v for k, v in secure_config.items() if k != "anonymization"}
        assessment = await _checker(bus).assess_compliance("GDPR", "db-1", None, config, provider_type="database")
        [art25] = [r for r in assessment.requirement_results if r.requirement_id == "GDPR_ART_25"]
        assert art25.status == "partial"
        assert assessment.overall_status == "partial"
        assert assessment.certification_status == "not_applicable"

    @pytest.mark.asyncio
    async def test_reuses_latest_audit(self, bus: EventBus, secure_config: dict) -> None:
        validator = SecurityValidator(bus)
        checker = ComplianceChecker(bus, validator)
        audit = await validator.audit_provider("db-1", "database", None, secure_config)
        assessment = await checker.assess_compliance("GDPR", "db-1", None, {})
        assert assessment.audit_id == audit.id
        assert len(validator.get_audit_history()) == 1

    @pytest.mark.asyncio
    async def test_requirement_subset(self, bus: EventBus) -> None:
        assessment = await _checker(bus).assess_compliance(
            "PCI", "db-1", None, {}, provider_type="database", requirement_ids=["PCI_REQ_6"]
        )
        assert [r.requirement_id for r in assessment.requirement_results] == ["PCI_REQ_6"]

    @pytest.mark.asyncio
    async def test_publishes_completion(self, bus: EventBus, event_log: list[tuple[str, Any]], secure_config: dict) -> None:
        checker = _checker(bus)
        assessment = await checker.assess_compliance("HIPAA", "db-1", None, secure_config, provider_type="database")
        assert ("compliance-assessment-completed", assessment) in event_log
        assert checker.get_assessment_history(framework_id="HIPAA") == [assessment]


class TestFrameworkManagement:
    @pytest.mark.asyncio
    async def test_custom_framework_lifecycle(self, bus: EventBus, event_log: list[tuple[str, Any]]) -> None:
        checker = _checker(bus)
        framework = ComplianceFramework(
            id="INTERNAL",
            name="Internal baseline",
            requirements=[ComplianceRequirement(id="INT_1", title="Network", rule_ids=["NET_001"])],
        )
        await checker.add_custom_framework(framework)
        updated = await checker.update_framework("INTERNAL", version="2")
        assert updated.version == "2"
        assert checker.get_framework("INTERNAL").version == "2"
        assert await checker.remove_framework("INTERNAL") is True
        assert await checker.remove_framework("INTERNAL") is False
        assert [t for t, _ in event_log] == ["framework-added", "framework-updated", "framework-removed"]

    @pytest.mark.asyncio
    async def test_update_unknown_framework(self, bus: EventBus) -> None:
        with pytest.raises(ConfigurationError):
            await _checker(bus).update_framework("NOPE", version="1")


class TestComplianceReport:
    @pytest.mark.asyncio
    async def test_report_summary(self, bus: EventBus, secure_config: dict, auth_without_controls: dict) -> None:
        checker = _checker(bus)
        ok = await checker.assess_compliance("SOC2", "db-1", None, secure_config, provider_type="database")
        bad = await checker.assess_compliance(
            "SOC2", "idp", None, auth_without_controls, provider_type="authentication"
        )
        report = ComplianceChecker.generate_compliance_report([ok, bad])
        assert report["summary"]["total_assessments"] == 2
        assert report["summary"]["compliant_providers"] == 1
        assert report["summary"]["critical_gaps"] == 1
        assert report["summary"]["certification_status"] == {"certified": 1, "pending": 0, "expired": 1}
        assert report["next_steps"][0] == "Address 1 critical compliance gaps immediately"

    def test_empty_report(self) -> None:
        report = ComplianceChecker.generate_compliance_report([])
        assert report["summary"]["average_score"] == 0.0
        assert report["assessments"] == []
