"""Depth-scaled vulnerability scanning of provider configurations.

Checks are grouped by scan depth (surface < deep < comprehensive); a scan
runs every check at or below the requested depth. Checks only fire on
explicitly insecure settings, never on absent ones. Known advisories come
from a table supplied by the caller; no vulnerability feed is bundled.
"""

from __future__ import annotations

import inspect
import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from provider_security.events import EventBus
from provider_security.exceptions import ConfigurationError
from provider_security.models import (
    SEVERITY_ORDER,
    Finding,
    FindingRemediation,
    Provider,
    ScanDepth,
    ScanResult,
    ScanSummary,
    Severity,
)
from provider_security.rules import lookup

logger = logging.getLogger(__name__)

DEPTH_LEVELS: dict[str, int] = {"surface": 0, "deep": 1, "comprehensive": 2}

FINDING_TIMELINE_DAYS: dict[str, int] = {"critical": 1, "high": 7, "medium": 30, "low": 90}

RISK_WEIGHTS: dict[str, int] = {"critical": 25, "high": 10, "medium": 5, "low": 1}

WEAK_CIPHER_MARKERS = ("RC4", "DES", "NULL", "EXPORT", "MD5")

MAX_SESSION_MINUTES = 1440

SARIF_LEVELS: dict[str, str] = {"critical": "error", "high": "error", "medium": "warning", "low": "note"}


class Advisory(BaseModel):
    """A known vulnerability affecting specific versions of a provider type."""

    id: str
    provider_type: str = "*"
    affected_versions: list[str]
    severity: Severity
    title: str
    description: str = ""
    cwe_id: str | None = None
    fix: str = "Upgrade to a patched version"


class ScanCheck(BaseModel):
    """One vulnerability check.

    ``detect(provider, config)`` returns an iterable of hits: either a
    location string or a dict overriding finding fields (``location``,
    ``title``, ``description``, ``severity``, ``cwe_id``, ``steps``).
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    title: str
    description: str
    severity: Severity
    category: str
    depth: ScanDepth
    cwe_id: str | None = None
    steps: list[str] = Field(default_factory=list)
    detect: Callable[[Provider, dict[str, Any]], Any] = Field(exclude=True)

    def to_finding(self, hit: str | dict[str, Any]) -> Finding:
        fields = {"location": hit} if isinstance(hit, str) else dict(hit)
        severity = fields.get("severity", self.severity)
        return Finding(
            id=str(uuid.uuid4()),
            check_id=self.id,
            title=fields.get("title", self.title),
            description=fields.get("description", self.description),
            severity=severity,
            category=self.category,
            depth=self.depth,
            location=fields.get("location", ""),
            cwe_id=fields.get("cwe_id", self.cwe_id),
            remediation=FindingRemediation(
                steps=list(fields.get("steps", self.steps)),
                timeline=FINDING_TIMELINE_DAYS[severity],
            ),
        )


def _detect_debug(provider: Provider, config: dict[str, Any]) -> list[str]:
    return ["debug"] if config.get("debug") is True else []


def _detect_anonymous_access(provider: Provider, config: dict[str, Any]) -> list[str]:
    hits = []
    if config.get("allowAnonymous") is True:
        hits.append("allowAnonymous")
    if lookup(config, "auth.allowAnonymous") is True:
        hits.append("auth.allowAnonymous")
    return hits


def _detect_public_endpoint(provider: Provider, config: dict[str, Any]) -> list[str]:
    return ["network.publicAccess"] if lookup(config, "network.publicAccess") is True else []


def _detect_weak_tls(provider: Provider, config: dict[str, Any]) -> list[str]:
    version = lookup(config, "tls.version")
    try:
        return ["tls.version"] if version is not None and float(version) < 1.2 else []
    except (TypeError, ValueError):
        return []


def _detect_wildcard_cors(provider: Provider, config: dict[str, Any]) -> list[str]:
    origins = lookup(config, "cors.origins")
    if origins == "*" or (isinstance(origins, list) and "*" in origins):
        return ["cors.origins"]
    return []


def _detect_weak_ciphers(provider: Provider, config: dict[str, Any]) -> list[dict[str, Any]]:
    ciphers = lookup(config, "tls.cipherSuites") or []
    weak = [c for c in ciphers if isinstance(c, str) and any(m in c.upper() for m in WEAK_CIPHER_MARKERS)]
    if not weak:
        return []
    return [{"location": "tls.cipherSuites", "description": f"Weak cipher suites enabled: {', '.join(weak)}"}]


def _detect_verbose_errors(provider: Provider, config: dict[str, Any]) -> list[str]:
    return ["errors.exposeStackTraces"] if lookup(config, "errors.exposeStackTraces") is True else []


def _detect_rate_limit_disabled(provider: Provider, config: dict[str, Any]) -> list[str]:
    return ["rateLimit.enabled"] if lookup(config, "rateLimit.enabled") is False else []


def _detect_long_sessions(provider: Provider, config: dict[str, Any]) -> list[str]:
    minutes = lookup(config, "session.timeoutMinutes")
    if isinstance(minutes, (int, float)) and not isinstance(minutes, bool) and minutes > MAX_SESSION_MINUTES:
        return ["session.timeoutMinutes"]
    return []


async def _probe_instance(provider: Provider, config: dict[str, Any]) -> list[dict[str, Any]]:
    probe = getattr(provider.instance, "security_probe", None)
    if not callable(probe):
        return []
    result = probe()
    if inspect.isawaitable(result):
        result = await result
    return [dict(item) for item in result or []]


def default_checks() -> list[ScanCheck]:
    """Return the built-in checks, excluding the advisory lookup."""
    return [
        ScanCheck(
            id="VULN_DEBUG_MODE", title="Debug mode enabled", depth="surface", severity="medium",
            category="configuration", cwe_id="CWE-489",
            description="Debug mode exposes internal state and diagnostic endpoints",
            steps=["Disable debug mode in production", "Remove diagnostic endpoints from deployed builds"],
            detect=_detect_debug,
        ),
        ScanCheck(
            id="VULN_ANONYMOUS_ACCESS", title="Anonymous access allowed", depth="surface",
            severity="critical", category="authentication", cwe_id="CWE-306",
            description="The provider accepts unauthenticated requests",
            steps=["Disable anonymous access", "Require authentication for every client"],
            detect=_detect_anonymous_access,
        ),
        ScanCheck(
            id="VULN_PUBLIC_ENDPOINT", title="Publicly reachable endpoint", depth="surface",
            severity="high", category="network", cwe_id="CWE-668",
            description="The provider endpoint is exposed to the public internet",
            steps=["Restrict the endpoint to private networks", "Place the provider behind a gateway or VPN"],
            detect=_detect_public_endpoint,
        ),
        ScanCheck(
            id="VULN_WEAK_TLS", title="Outdated TLS version", depth="surface", severity="high",
            category="encryption", cwe_id="CWE-326",
            description="TLS below version 1.2 is configured",
            steps=["Set the minimum TLS version to 1.2", "Disable SSL and TLS 1.0/1.1"],
            detect=_detect_weak_tls,
        ),
        ScanCheck(
            id="VULN_WILDCARD_CORS", title="Wildcard CORS origin", depth="deep", severity="medium",
            category="network", cwe_id="CWE-942",
            description="Cross-origin requests are accepted from any origin",
            steps=["Replace the wildcard with an explicit origin allowlist"],
            detect=_detect_wildcard_cors,
        ),
        ScanCheck(
            id="VULN_WEAK_CIPHERS", title="Weak cipher suites", depth="deep", severity="high",
            category="encryption", cwe_id="CWE-327",
            description="Weak cipher suites are enabled",
            steps=["Remove RC4, DES, NULL and export-grade cipher suites", "Prefer AEAD cipher suites"],
            detect=_detect_weak_ciphers,
        ),
        ScanCheck(
            id="VULN_VERBOSE_ERRORS", title="Stack traces exposed", depth="deep", severity="medium",
            category="configuration", cwe_id="CWE-209",
            description="Error responses include stack traces",
            steps=["Return generic error messages to clients", "Log stack traces server-side only"],
            detect=_detect_verbose_errors,
        ),
        ScanCheck(
            id="VULN_RATE_LIMIT_DISABLED", title="Rate limiting disabled", depth="comprehensive",
            severity="medium", category="availability", cwe_id="CWE-770",
            description="Rate limiting is explicitly disabled",
            steps=["Enable request rate limiting", "Define per-client quotas"],
            detect=_detect_rate_limit_disabled,
        ),
        ScanCheck(
            id="VULN_LONG_SESSIONS", title="Excessive session lifetime", depth="comprehensive",
            severity="low", category="authentication", cwe_id="CWE-613",
            description=f"Sessions stay valid for more than {MAX_SESSION_MINUTES} minutes",
            steps=["Reduce the session timeout", "Require re-authentication for sensitive actions"],
            detect=_detect_long_sessions,
        ),
        ScanCheck(
            id="VULN_LIVE_PROBE", title="Live security probe finding", depth="comprehensive",
            severity="medium", category="runtime",
            description="Issue reported by the provider's own security probe",
            steps=["Review the probe output and apply the provider's recommended fix"],
            detect=_probe_instance,
        ),
    ]


class VulnerabilityScanner:
    """Runs depth-scaled vulnerability checks against providers."""

    def __init__(
        self,
        bus: EventBus,
        checks: Iterable[ScanCheck] | None = None,
        advisories: Iterable[Advisory | dict] | None = None,
    ) -> None:
        self.bus = bus
        self.checks: list[ScanCheck] = list(default_checks() if checks is None else checks)
        self.advisories = [a if isinstance(a, Advisory) else Advisory.model_validate(a) for a in advisories or []]
        self.checks.append(
            ScanCheck(
                id="VULN_KNOWN_ADVISORY", title="Known advisory", depth="deep", severity="high",
                category="dependency", description="The configured version has a published advisory",
                detect=self._detect_advisories,
            )
        )

    @staticmethod
    def validate_depth(depth: str) -> None:
        if depth not in DEPTH_LEVELS:
            raise ConfigurationError(f"Unknown scan depth: {depth}", details={"depth": depth})

    def _detect_advisories(self, provider: Provider, config: dict[str, Any]) -> list[dict[str, Any]]:
        version = config.get("version")
        if version is None:
            return []
        hits = []
        for advisory in self.advisories:
            if advisory.provider_type not in ("*", provider.type):
                continue
            if str(version) in advisory.affected_versions:
                hits.append({
                    "location": "version",
                    "title": f"{advisory.id}: {advisory.title}",
                    "description": advisory.description or advisory.title,
                    "severity": advisory.severity,
                    "cwe_id": advisory.cwe_id,
                    "steps": [advisory.fix],
                })
        return hits

    async def scan_provider(
        self,
        provider_id: str,
        provider_type: str,
        instance: Any,
        config: dict[str, Any],
        *,
        depth: str = "deep",
    ) -> ScanResult:
        """Scan one provider at the given depth.

        Raises:
            ConfigurationError: If ``depth`` is not surface, deep or comprehensive.
        """
        self.validate_depth(depth)
        level = DEPTH_LEVELS[depth]
        provider = Provider(id=provider_id, type=provider_type, instance=instance, config=config)

        findings: list[Finding] = []
        check_errors: list[str] = []
        for check in self.checks:
            if DEPTH_LEVELS[check.depth] > level:
                continue
            try:
                hits = check.detect(provider, config)
                if inspect.isawaitable(hits):
                    hits = await hits
                findings.extend(check.to_finding(hit) for hit in hits or [])
            except Exception as exc:
                logger.error("Scan check %s failed on provider %s: %s", check.id, provider_id, exc)
                check_errors.append(check.id)
                await self.bus.publish(
                    "scan-error", {"provider_id": provider_id, "check_id": check.id, "error": str(exc)}
                )

        findings.sort(key=lambda f: SEVERITY_ORDER[f.severity])
        result = ScanResult(
            provider_id=provider_id,
            provider_type=provider_type,
            depth=depth,
            timestamp=datetime.now(UTC),
            findings=findings,
            summary=summarize(findings),
            check_errors=check_errors,
        )
        logger.info(
            "Scanned provider %s at %s depth: %d findings, risk %.0f",
            provider_id, depth, len(findings), result.summary.risk_score,
        )
        await self.bus.publish("scan-completed", result)
        return result


def summarize(findings: list[Finding]) -> ScanSummary:
    counts = {sev: sum(1 for f in findings if f.severity == sev) for sev in RISK_WEIGHTS}
    risk = min(100, sum(RISK_WEIGHTS[sev] * n for sev, n in counts.items()))
    return ScanSummary(**counts, total=len(findings), risk_score=risk)


def to_sarif(result: ScanResult, tool_version: str = "0.1.0") -> dict:
    """Export a scan result as a SARIF 2.1.0 log."""
    rules: dict[str, dict] = {}
    for finding in result.findings:
        rule = rules.setdefault(finding.check_id, {
            "id": finding.check_id,
            "name": finding.title,
            "shortDescription": {"text": finding.title},
            "properties": {"category": finding.category},
        })
        if finding.cwe_id:
            rule["properties"]["cwe"] = finding.cwe_id
    return {
        "$schema": "https://json.schemastore.org/sarif-2.1.0.json",
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": "provider-security-scanner",
                        "version": tool_version,
                        "rules": list(rules.values()),
                    }
                },
                "results": [
                    {
                        "ruleId": f.check_id,
                        "level": SARIF_LEVELS[f.severity],
                        "message": {"text": f.description},
                        "locations": [
                            {
                                "logicalLocations": [
                                    {"name": f.location or result.provider_id, "kind": "member"}
                                ]
                            }
                        ],
                        "properties": {
                            "severity": f.severity,
                            "providerId": result.provider_id,
                            "remediationTimelineDays": f.remediation.timeline,
                        },
                    }
                    for f in result.findings
                ],
            }
        ],
    }
