"""Provider Security Orchestrator - rule-driven security, compliance, and vulnerability assessment for infrastructure providers."""

__version__ = "0.1.0"

from provider_security.config import OrchestrationConfig, SecuritySettings, get_settings
from provider_security.events import EventBus
from provider_security.exceptions import (
    ConfigurationError,
    IncidentTransitionError,
    NotificationError,
    ProviderAssessmentError,
    ReportPersistenceError,
    RuleEvaluationError,
    SecurityError,
)
from provider_security.models import (
    AuditResult,
    ComplianceAssessment,
    Provider,
    ScanResult,
    SecurityAlert,
    SecurityDashboard,
    SecurityIncident,
    SecurityReport,
    SecurityTask,
    Violation,
)
from provider_security.orchestrator import SecurityOrchestrator
from provider_security.rules import RuleRegistry, SecurityRule

__all__ = [
    "__version__",
    "OrchestrationConfig",
    "SecuritySettings",
    "get_settings",
    "EventBus",
    "SecurityError",
    "RuleEvaluationError",
    "ProviderAssessmentError",
    "ConfigurationError",
    "IncidentTransitionError",
    "ReportPersistenceError",
    "NotificationError",
    "Provider",
    "Violation",
    "AuditResult",
    "ComplianceAssessment",
    "ScanResult",
    "SecurityAlert",
    "SecurityIncident",
    "SecurityTask",
    "SecurityDashboard",
    "SecurityReport",
    "SecurityOrchestrator",
    "SecurityRule",
    "RuleRegistry",
]
