"""Pydantic v2 data models for violations, audits, compliance assessments,
scan findings, alerts, incidents, tasks, dashboards and reports.

All core data structures used throughout the orchestrator live here.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from provider_security.config import OrchestrationConfig

Severity = Literal["critical", "high", "medium", "low"]
RuleCategory = Literal[
    "authentication",
    "authorization",
    "encryption",
    "input_validation",
    "data_protection",
    "network",
    "configuration",
]
ScanDepth = Literal["surface", "deep", "comprehensive"]
ComplianceStatus = Literal["compliant", "non_compliant", "partial"]
CertificationStatus = Literal["certified", "pending", "expired", "not_applicable"]
RequirementCategory = Literal["technical", "administrative", "physical"]
ProviderStatusLabel = Literal["secure", "warning", "critical"]
SecurityTrendLabel = Literal["improving", "stable", "declining"]
VulnerabilityTrendLabel = Literal["improving", "stable", "worsening"]
AlertType = Literal["security_violation", "compliance_failure", "vulnerability_detected", "incident"]
IncidentCategory = Literal["breach", "vulnerability", "compliance", "access", "malware", "other"]
IncidentStatus = Literal["open", "investigating", "contained", "resolved", "closed"]
TaskType = Literal["audit", "scan", "remediation", "compliance_check"]
TaskStatus = Literal["pending", "completed", "failed"]
Posture = Literal["excellent", "good", "fair", "poor", "critical"]
FindingType = Literal["security", "compliance", "vulnerability"]

SEVERITY_ORDER: dict[str, int] = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def _now() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Providers and rule output
# ---------------------------------------------------------------------------


class Provider(BaseModel):
    """An infrastructure component under assessment.

    ``instance`` is an opaque handle passed through to rule, compliance and
    scanner callbacks; the engine never interprets it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    type: str
    instance: Any = Field(default=None, exclude=True)
    config: dict[str, Any] = Field(default_factory=dict)


class RemediationGuidance(BaseModel):
    steps: list[str] = Field(default_factory=list)
    code: str | None = None
    config: dict[str, Any] | None = None


class Violation(BaseModel):
    """A single rule failure against a provider."""

    rule_id: str
    severity: Severity
    message: str
    location: str
    recommendation: str
    compliance: list[str] = Field(default_factory=list)
    cwe_id: str | None = None
    remediation: RemediationGuidance | None = None


class AuditResult(BaseModel):
    """Result of running the rule registry against one provider."""

    id: str = Field(default_factory=_new_id)
    provider_id: str
    provider_type: str
    timestamp: datetime = Field(default_factory=_now)
    overall_score: float = Field(ge=0, le=100)
    risk_level: Severity
    violations: list[Violation] = Field(default_factory=list)
    compliance: dict[str, bool] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)
    rule_errors: list[str] = Field(default_factory=list)
    next_audit_date: datetime


# ---------------------------------------------------------------------------
# Compliance
# ---------------------------------------------------------------------------


class ComplianceRequirement(BaseModel):
    id: str
    title: str
    description: str = ""
    category: RequirementCategory = "technical"
    mandatory: bool = True
    severity: Severity = "high"
    rule_ids: list[str] = Field(default_factory=list)


class ComplianceFramework(BaseModel):
    id: str
    name: str
    version: str = ""
    description: str = ""
    jurisdiction: list[str] = Field(default_factory=list)
    audit_frequency_days: int = 365
    certification_required: bool = False
    requirements: list[ComplianceRequirement] = Field(default_factory=list)


class RequirementResult(BaseModel):
    requirement_id: str
    status: ComplianceStatus
    passed: bool
    score: float = Field(ge=0, le=100)
    violated_rules: list[str] = Field(default_factory=list)
    findings: list[str] = Field(default_factory=list)


class GapRemediation(BaseModel):
    steps: list[str] = Field(default_factory=list)
    timeline: int  # days
    cost: Literal["low", "medium", "high"] = "medium"
    priority: int = Field(5, ge=1, le=10)


class ComplianceGap(BaseModel):
    """A failed requirement within a framework."""

    requirement_id: str
    severity: Severity
    description: str
    impact: str
    remediation: GapRemediation


class ComplianceEvidence(BaseModel):
    type: Literal["configuration", "log", "certificate", "policy", "procedure"] = "configuration"
    description: str
    location: str
    timestamp: datetime = Field(default_factory=_now)
    retention_days: int = 2555


class ComplianceAssessment(BaseModel):
    id: str = Field(default_factory=_new_id)
    framework_id: str
    provider_id: str
    audit_id: str | None = None
    timestamp: datetime = Field(default_factory=_now)
    overall_status: ComplianceStatus
    overall_score: float = Field(ge=0, le=100)
    requirement_results: list[RequirementResult] = Field(default_factory=list)
    gaps: list[ComplianceGap] = Field(default_factory=list)
    evidence: list[ComplianceEvidence] = Field(default_factory=list)
    certification_status: CertificationStatus = "not_applicable"
    next_assessment_date: datetime


# ---------------------------------------------------------------------------
# Vulnerability scanning
# ---------------------------------------------------------------------------


class FindingRemediation(BaseModel):
    steps: list[str] = Field(default_factory=list)
    timeline: int  # days


class Finding(BaseModel):
    """A detected vulnerability."""

    id: str
    check_id: str
    title: str
    description: str
    severity: Severity
    category: str
    depth: ScanDepth
    location: str = ""
    cwe_id: str | None = None
    remediation: FindingRemediation


class ScanSummary(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    total: int = 0
    risk_score: float = Field(0, ge=0, le=100)


class ScanResult(BaseModel):
    id: str = Field(default_factory=_new_id)
    provider_id: str
    provider_type: str
    depth: ScanDepth
    timestamp: datetime = Field(default_factory=_now)
    findings: list[Finding] = Field(default_factory=list)
    summary: ScanSummary = Field(default_factory=ScanSummary)
    check_errors: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Orchestration state
# ---------------------------------------------------------------------------


class ProviderTrends(BaseModel):
    security_score_trend: SecurityTrendLabel = "stable"
    vulnerability_trend: VulnerabilityTrendLabel = "stable"


class ProviderSecurityStatus(BaseModel):
    provider_id: str
    provider_type: str
    security_score: float = Field(ge=0, le=100)
    compliance_score: float = Field(ge=0, le=100)
    vulnerability_risk_score: float = Field(ge=0, le=100)
    status: ProviderStatusLabel
    last_audited: datetime = Field(default_factory=_now)
    critical_issues: int = 0
    high_issues: int = 0
    trends: ProviderTrends = Field(default_factory=ProviderTrends)
    assessed: bool = True
    error: str | None = None


class SecurityAlert(BaseModel):
    id: str = Field(default_factory=_new_id)
    severity: Severity
    type: AlertType
    provider_id: str
    title: str
    description: str
    timestamp: datetime = Field(default_factory=_now)
    acknowledged: bool = False
    resolved: bool = False
    assignee: str | None = None
    due_date: datetime | None = None
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None


class IncidentTimelineEntry(BaseModel):
    timestamp: datetime = Field(default_factory=_now)
    action: str
    performer: str
    notes: str | None = None


class SecurityIncident(BaseModel):
    id: str = Field(default_factory=_new_id)
    severity: Severity
    category: IncidentCategory
    provider_id: str
    title: str
    description: str
    detected_at: datetime = Field(default_factory=_now)
    reported_by: str = "System"
    status: IncidentStatus = "open"
    affected_systems: list[str] = Field(default_factory=list)
    root_cause: str | None = None
    timeline: list[IncidentTimelineEntry] = Field(default_factory=list)


class SecurityTask(BaseModel):
    id: str = Field(default_factory=_new_id)
    type: TaskType
    provider_id: str
    title: str
    description: str
    priority: Severity
    scheduled_date: datetime = Field(default_factory=_now)
    estimated_duration: int  # minutes
    # Carried for callers; only "empty" is interpreted (auto-remediation eligibility).
    dependencies: list[str] = Field(default_factory=list)
    assignee: str | None = None
    status: TaskStatus = "pending"


class ScorePoint(BaseModel):
    date: datetime
    score: float


class VulnerabilityPoint(BaseModel):
    date: datetime
    critical: int
    high: int
    total: int


class CompliancePoint(BaseModel):
    date: datetime
    compliant: int
    total: int


class IncidentPoint(BaseModel):
    date: datetime
    severity: Severity
    resolved: bool


class SecurityTrends(BaseModel):
    security_score_history: list[ScorePoint] = Field(default_factory=list)
    vulnerability_history: list[VulnerabilityPoint] = Field(default_factory=list)
    compliance_history: list[CompliancePoint] = Field(default_factory=list)
    incident_history: list[IncidentPoint] = Field(default_factory=list)


class SecurityDashboard(BaseModel):
    """One immutable snapshot of fleet-wide security state."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_now)
    overall_posture: Posture
    overall_score: float = Field(ge=0, le=100)
    providers: list[ProviderSecurityStatus] = Field(default_factory=list)
    trends: SecurityTrends = Field(default_factory=SecurityTrends)
    alerts: list[SecurityAlert] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    upcoming_tasks: list[SecurityTask] = Field(default_factory=list)
    degraded: bool = False


class HistoryEntry(BaseModel):
    timestamp: datetime
    dashboard: SecurityDashboard


# ---------------------------------------------------------------------------
# Event payloads
# ---------------------------------------------------------------------------


class CriticalFinding(BaseModel):
    type: FindingType
    provider_id: str
    details: AuditResult | ComplianceAssessment | ScanResult
    timestamp: datetime = Field(default_factory=_now)


class CriticalAlertNotification(BaseModel):
    subject: str
    body: str
    timestamp: datetime = Field(default_factory=_now)
    finding: CriticalFinding


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class RemediationItem(BaseModel):
    """A single actionable remediation entry within a plan."""

    task_id: str
    title: str
    priority: Severity
    action: str
    estimated_duration: int
    status: TaskStatus = "pending"


class RemediationPlan(BaseModel):
    """Per-provider remediation plan assembled from generated tasks."""

    id: str = Field(default_factory=_new_id)
    provider_id: str
    created_at: datetime = Field(default_factory=_now)
    items: list[RemediationItem] = Field(default_factory=list)
    priority: Severity = "low"
    estimated_minutes: int = 0
    status: str = "active"
    progress_pct: float = 0.0


class ProviderAssessmentRecord(BaseModel):
    """Raw per-provider payloads from one assessment run."""

    provider_id: str
    provider_type: str
    audit: AuditResult | None = None
    compliance: list[ComplianceAssessment] = Field(default_factory=list)
    scan: ScanResult | None = None
    error: str | None = None


class ExecutiveSummary(BaseModel):
    overall_posture: Posture
    overall_score: float
    total_providers: int
    critical_alerts: int
    high_alerts: int
    total_alerts: int
    upcoming_tasks: int
    open_incidents: int
    key_recommendations: list[str] = Field(default_factory=list)


class SecurityReport(BaseModel):
    """Comprehensive report handed to the persistence collaborator."""

    id: str = Field(default_factory=_new_id)
    generated_at: datetime
    executive_summary: ExecutiveSummary
    dashboard: SecurityDashboard
    detailed_assessments: list[ProviderAssessmentRecord] = Field(default_factory=list)
    incidents: list[SecurityIncident] = Field(default_factory=list)
    remediation_plans: list[RemediationPlan] = Field(default_factory=list)
    historical_trends: list[HistoryEntry] = Field(default_factory=list)
    configuration: OrchestrationConfig


class AuditReportSummary(BaseModel):
    total_providers: int
    average_score: float
    critical_violations: int
    high_violations: int
    compliance_status: dict[str, bool] = Field(default_factory=dict)


class AuditReport(BaseModel):
    """Validator-level report over a multi-provider audit."""

    id: str = Field(default_factory=_new_id)
    generated_at: datetime = Field(default_factory=_now)
    summary: AuditReportSummary
    providers: list[AuditResult] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
