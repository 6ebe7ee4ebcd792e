"""Tests for the depth-scaled vulnerability scanner."""

from __future__ import annotations

from typing import Any

import pytest

from provider_security.events import EventBus
from provider_security.exceptions import ConfigurationError
from provider_security.models import Provider
from provider_security.scanner import ScanCheck, VulnerabilityScanner, summarize, to_sarif

INSECURE = {
    "debug": True,
    "allowAnonymous": True,
    "cors": {"origins": ["*"]},
    "tls": {"version": 1.0, "cipherSuites": ["TLS_RSA_WITH_RC4_128_SHA"]},
    "rateLimit": {"enabled": False},
    "session": {"timeoutMinutes": 4320},
}


class _ProbedInstance:
    async def security_probe(self) -> list[dict[str, Any]]:
        return [{"location": "admin-port", "title": "Admin port open", "severity": "high"}]


class TestScanDepth:
    @pytest.mark.asyncio
    async def test_unknown_depth(self, bus: EventBus) -> None:
        with pytest.raises(ConfigurationError):
            await VulnerabilityScanner(bus).scan_provider("p", "cache", None, {}, depth="paranoid")

    @pytest.mark.asyncio
    async def test_clean_config_has_no_findings(self, bus: EventBus, secure_config: dict) -> None:
        result = await VulnerabilityScanner(bus).scan_provider(
            "p", "cache", None, secure_config, depth="comprehensive"
        )
        assert result.findings == []
        assert result.summary.risk_score == 0

    @pytest.mark.asyncio
    async def test_depth_widens_checks(self, bus: EventBus) -> None:
        scanner = VulnerabilityScanner(bus)
        surface = await scanner.scan_provider("p", "cache", None, INSECURE, depth="surface")
        deep = await scanner.scan_provider("p", "cache", None, INSECURE, depth="deep")
        full = await scanner.scan_provider("p", "cache", None, INSECURE, depth="comprehensive")
        assert {f.check_id for f in surface.findings} == {"VULN_DEBUG_MODE", "VULN_ANONYMOUS_ACCESS", "VULN_WEAK_TLS"}
        assert {f.check_id for f in deep.findings} - {f.check_id for f in surface.findings} == {
            "VULN_WILDCARD_CORS", "VULN_WEAK_CIPHERS",
        }
        assert {f.check_id for f in full.findings} - {f.check_id for f in deep.findings} == {
            "VULN_RATE_LIMIT_DISABLED", "VULN_LONG_SESSIONS",
        }

    @pytest.mark.asyncio
    async def test_findings_sorted_by_severity(self, bus: EventBus) -> None:
        result = await VulnerabilityScanner(bus).scan_provider("p", "cache", None, INSECURE, depth="comprehensive")
        severities = [f.severity for f in result.findings]
        assert severities[0] == "critical"
        assert severities[-1] == "low"
        critical = result.findings[0]
        assert critical.remediation.timeline == 1


class TestScanExtensions:
    @pytest.mark.asyncio
    async def test_live_probe(self, bus: EventBus) -> None:
        result = await VulnerabilityScanner(bus).scan_provider(
            "p", "cache", _ProbedInstance(), {}, depth="comprehensive"
        )
        [finding] = result.findings
        assert finding.check_id == "VULN_LIVE_PROBE"
        assert finding.title == "Admin port open"
        assert finding.severity == "high"
        assert finding.remediation.timeline == 7

    @pytest.mark.asyncio
    async def test_advisory_matches_version(self, bus: EventBus) -> None:
        scanner = VulnerabilityScanner(bus, advisories=[{
            "id": "ADV-2024-001",
            "provider_type": "cache",
            "affected_versions": ["6.0.1"],
            "severity": "critical",
            "title": "Remote code execution",
        }])
        hit = await scanner.scan_provider("p", "cache", None, {"version": "6.0.1"}, depth="deep")
        miss = await scanner.scan_provider("p", "database", None, {"version": "6.0.1"}, depth="deep")
        surface = await scanner.scan_provider("p", "cache", None, {"version": "6.0.1"}, depth="surface")
        assert [f.title for f in hit.findings] == ["ADV-2024-001: Remote code execution"]
        assert hit.findings[0].severity == "critical"
        assert miss.findings == []
        assert surface.findings == []

    @pytest.mark.asyncio
    async def test_failing_check_is_isolated(self, bus: EventBus, event_log: list[tuple[str, Any]]) -> None:
        def explode(provider: Provider, config: dict) -> list:
            raise ValueError("bad check")

        broken = ScanCheck(
            id="VULN_BROKEN", title="Broken", description="d", severity="low",
            category="test", depth="surface", detect=explode,
        )
        scanner = VulnerabilityScanner(bus, checks=[broken])
        result = await scanner.scan_provider("p", "cache", None, {"debug": True}, depth="surface")
        assert result.check_errors == ["VULN_BROKEN"]
        assert [t for t, _ in event_log] == ["scan-error", "scan-completed"]


class TestSummaries:
    @pytest.mark.asyncio
    async def test_risk_score_capped(self, bus: EventBus) -> None:
        result = await VulnerabilityScanner(bus).scan_provider("p", "cache", None, INSECURE, depth="comprehensive")
        findings = result.findings * 4
        summary = summarize(findings)
        assert summary.total == len(findings)
        assert summary.risk_score == 100

    @pytest.mark.asyncio
    async def test_sarif_export(self, bus: EventBus) -> None:
        result = await VulnerabilityScanner(bus).scan_provider("p", "cache", None, {"debug": True}, depth="surface")
        sarif = to_sarif(result)
        assert sarif["version"] == "2.1.0"
        [run] = sarif["runs"]
        assert run["tool"]["driver"]["rules"][0]["id"] == "VULN_DEBUG_MODE"
        assert run["results"][0]["level"] == "warning"
        assert run["results"][0]["properties"]["providerId"] == "p"
