"""Pure functions that turn per-provider results into fleet-level state.

Nothing here touches orchestrator state; callers pass in the history and
the time reference so results are deterministic for a given input.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

from provider_security.config import Thresholds
from provider_security.models import (
    AuditResult,
    ComplianceAssessment,
    CompliancePoint,
    HistoryEntry,
    IncidentPoint,
    Posture,
    ProviderSecurityStatus,
    ProviderTrends,
    ScanResult,
    ScorePoint,
    SecurityAlert,
    SecurityIncident,
    SecurityTask,
    SecurityTrends,
    Severity,
    VulnerabilityPoint,
)

VIOLATION_ALERT_WINDOW = timedelta(hours=24)
COMPLIANCE_ALERT_WINDOW = timedelta(days=7)
VULNERABILITY_ALERT_WINDOW = timedelta(hours=4)

MINUTES_PER_STEP = 30
MINUTES_PER_DAY = 1440

TREND_WINDOW = 5
SECURITY_TREND_DELTA = 5
VULNERABILITY_TREND_DELTA = 10

GENERAL_RECOMMENDATIONS = [
    "Implement continuous security monitoring",
    "Establish regular security training programs",
    "Maintain up-to-date incident response procedures",
    "Regular security architecture reviews",
]


def _task_priority(severity: str) -> Severity:
    return severity if severity in ("critical", "high") else "medium"


def compute_trends(history: Sequence[HistoryEntry], provider_id: str) -> ProviderTrends:
    """Compare the two most recent historical snapshots of a provider."""
    points = [
        status
        for entry in list(history)[-TREND_WINDOW:]
        for status in entry.dashboard.providers
        if status.provider_id == provider_id
    ]
    if len(points) < 2:
        return ProviderTrends()
    previous, current = points[-2], points[-1]

    trends = ProviderTrends()
    security_delta = current.security_score - previous.security_score
    if security_delta > SECURITY_TREND_DELTA:
        trends.security_score_trend = "improving"
    elif security_delta < -SECURITY_TREND_DELTA:
        trends.security_score_trend = "declining"

    risk_delta = current.vulnerability_risk_score - previous.vulnerability_risk_score
    if risk_delta > VULNERABILITY_TREND_DELTA:
        trends.vulnerability_trend = "worsening"
    elif risk_delta < -VULNERABILITY_TREND_DELTA:
        trends.vulnerability_trend = "improving"
    return trends


def provider_status(
    provider_id: str,
    provider_type: str,
    audit: AuditResult,
    assessments: list[ComplianceAssessment],
    scan: ScanResult,
    thresholds: Thresholds,
    trends: ProviderTrends,
    now: datetime,
) -> ProviderSecurityStatus:
    compliance_score = (
        sum(a.overall_score for a in assessments) / len(assessments) if assessments else 100.0
    )
    critical = sum(1 for v in audit.violations if v.severity == "critical") + scan.summary.critical
    high = sum(1 for v in audit.violations if v.severity == "high") + scan.summary.high
    risk = scan.summary.risk_score

    if critical > 0 or audit.overall_score < thresholds.security_score:
        status = "critical"
    elif high > 2 or risk > thresholds.vulnerability_risk_score:
        status = "warning"
    else:
        status = "secure"

    return ProviderSecurityStatus(
        provider_id=provider_id,
        provider_type=provider_type,
        security_score=audit.overall_score,
        compliance_score=round(compliance_score, 2),
        vulnerability_risk_score=risk,
        status=status,
        last_audited=now,
        critical_issues=critical,
        high_issues=high,
        trends=trends,
    )


def synthetic_status(provider_id: str, provider_type: str, error: str, now: datetime) -> ProviderSecurityStatus:
    """Status recorded for a provider whose assessment failed."""
    return ProviderSecurityStatus(
        provider_id=provider_id,
        provider_type=provider_type,
        security_score=0,
        compliance_score=0,
        vulnerability_risk_score=100,
        status="critical",
        last_audited=now,
        critical_issues=1,
        high_issues=0,
        trends=ProviderTrends(security_score_trend="declining", vulnerability_trend="worsening"),
        assessed=False,
        error=error,
    )


def synthetic_alert(provider_id: str, error: str, now: datetime) -> SecurityAlert:
    return SecurityAlert(
        severity="critical",
        type="security_violation",
        provider_id=provider_id,
        title=f"Security Assessment Failed: {provider_id}",
        description=error,
        timestamp=now,
    )


def generate_alerts(
    provider_id: str,
    audit: AuditResult,
    assessments: list[ComplianceAssessment],
    scan: ScanResult,
    now: datetime,
) -> list[SecurityAlert]:
    """Alerts with due dates fixed relative to ``now``."""
    alerts: list[SecurityAlert] = []
    for violation in audit.violations:
        if violation.severity in ("critical", "high"):
            alerts.append(SecurityAlert(
                severity=violation.severity,
                type="security_violation",
                provider_id=provider_id,
                title=f"Security Violation: {violation.rule_id}",
                description=violation.message,
                timestamp=now,
                due_date=now + VIOLATION_ALERT_WINDOW,
            ))
    for assessment in assessments:
        if assessment.overall_status == "non_compliant":
            alerts.append(SecurityAlert(
                severity="high",
                type="compliance_failure",
                provider_id=provider_id,
                title=f"Compliance Failure: {assessment.framework_id}",
                description=f"Provider is non-compliant with {assessment.framework_id} requirements",
                timestamp=now,
                due_date=now + COMPLIANCE_ALERT_WINDOW,
            ))
    for finding in scan.findings:
        if finding.severity == "critical":
            alerts.append(SecurityAlert(
                severity="critical",
                type="vulnerability_detected",
                provider_id=provider_id,
                title=f"Critical Vulnerability: {finding.title}",
                description=finding.description,
                timestamp=now,
                due_date=now + VULNERABILITY_ALERT_WINDOW,
            ))
    return alerts


def generate_tasks(
    provider_id: str,
    audit: AuditResult,
    assessments: list[ComplianceAssessment],
    scan: ScanResult,
    now: datetime,
) -> list[SecurityTask]:
    tasks: list[SecurityTask] = []
    for violation in audit.violations:
        if violation.remediation and violation.remediation.steps:
            tasks.append(SecurityTask(
                type="remediation",
                provider_id=provider_id,
                title=f"Fix Security Violation: {violation.rule_id}",
                description=violation.recommendation,
                priority=_task_priority(violation.severity),
                scheduled_date=now,
                estimated_duration=len(violation.remediation.steps) * MINUTES_PER_STEP,
            ))
    for assessment in assessments:
        for gap in assessment.gaps:
            tasks.append(SecurityTask(
                type="compliance_check",
                provider_id=provider_id,
                title=f"Address Compliance Gap: {gap.requirement_id}",
                description=gap.description,
                priority=_task_priority(gap.severity),
                scheduled_date=now + timedelta(days=gap.remediation.timeline),
                estimated_duration=gap.remediation.timeline * MINUTES_PER_DAY,
            ))
    for finding in scan.findings:
        if finding.severity in ("critical", "high"):
            tasks.append(SecurityTask(
                type="remediation",
                provider_id=provider_id,
                title=f"Fix Vulnerability: {finding.title}",
                description=finding.description,
                priority=finding.severity,
                scheduled_date=now,
                estimated_duration=finding.remediation.timeline * MINUTES_PER_DAY,
            ))
    return tasks


def overall_score(statuses: Sequence[ProviderSecurityStatus]) -> float:
    """Mean of ``0.4*security + 0.3*compliance + 0.3*(100 - risk)``; 0 for an empty fleet."""
    if not statuses:
        return 0.0
    weighted = [
        0.4 * s.security_score + 0.3 * s.compliance_score + 0.3 * max(0.0, 100 - s.vulnerability_risk_score)
        for s in statuses
    ]
    return round(sum(weighted) / len(weighted), 2)


def determine_posture(score: float, alerts: Sequence[SecurityAlert]) -> Posture:
    critical = sum(1 for a in alerts if a.severity == "critical")
    high = sum(1 for a in alerts if a.severity == "high")
    if critical > 0:
        return "critical"
    if score < 50 or high > 5:
        return "poor"
    if score < 70 or high > 2:
        return "fair"
    if score < 85:
        return "good"
    return "excellent"


def fleet_trends(
    statuses: Sequence[ProviderSecurityStatus],
    incidents: Sequence[SecurityIncident],
    now: datetime,
) -> SecurityTrends:
    """Point-in-time trend sample for the current run."""
    if not statuses:
        return SecurityTrends()
    critical = sum(s.critical_issues for s in statuses)
    high = sum(s.high_issues for s in statuses)
    return SecurityTrends(
        security_score_history=[
            ScorePoint(date=now, score=round(sum(s.security_score for s in statuses) / len(statuses), 2))
        ],
        vulnerability_history=[VulnerabilityPoint(date=now, critical=critical, high=high, total=critical + high)],
        compliance_history=[
            CompliancePoint(date=now, compliant=sum(1 for s in statuses if s.compliance_score >= 80), total=len(statuses))
        ],
        incident_history=[
            IncidentPoint(date=i.detected_at, severity=i.severity, resolved=i.status in ("resolved", "closed"))
            for i in incidents
        ],
    )


def fleet_recommendations(
    statuses: Sequence[ProviderSecurityStatus], alerts: Sequence[SecurityAlert]
) -> list[str]:
    recs: list[str] = []

    def add(*items: str) -> None:
        recs.extend(i for i in items if i not in recs)

    critical_alerts = sum(1 for a in alerts if a.severity == "critical")
    if critical_alerts:
        add(
            f"Address {critical_alerts} critical security alerts immediately",
            "Implement emergency incident response procedures",
        )
    low_score = sum(1 for s in statuses if s.security_score < 70)
    if low_score:
        add(
            f"Improve security posture for {low_score} providers",
            "Conduct comprehensive security audit and remediation",
        )
    high_risk = sum(1 for s in statuses if s.vulnerability_risk_score > 70)
    if high_risk:
        add(
            f"Address high vulnerability risk in {high_risk} providers",
            "Implement automated vulnerability scanning and patching",
        )
    low_compliance = sum(1 for s in statuses if s.compliance_score < 80)
    if low_compliance:
        add(
            f"Improve compliance posture for {low_compliance} providers",
            "Implement continuous compliance monitoring",
        )
    add(*GENERAL_RECOMMENDATIONS)
    return recs
