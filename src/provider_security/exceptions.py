"""Custom exception hierarchy for the provider security orchestrator.

Separates plug-in level defects (a single rule or provider), which are
contained by the engine, from orchestration level failures (bad
configuration, storage), which propagate to the caller.
"""

from __future__ import annotations

from typing import Any


class SecurityError(Exception):
    """Base exception for all security orchestration errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.details = details or {}


class RuleEvaluationError(SecurityError):
    """Raised when a single security rule fails to evaluate against a provider."""

    def __init__(self, message: str, rule_id: str, provider_id: str, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.rule_id = rule_id
        self.provider_id = provider_id


class ProviderAssessmentError(SecurityError):
    """Raised when assessing one provider fails as a whole."""

    def __init__(self, message: str, provider_id: str, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.provider_id = provider_id


class ConfigurationError(SecurityError):
    """Raised for invalid orchestration input (unknown framework, bad depth, bad config)."""


class IncidentTransitionError(ConfigurationError):
    """Raised when an incident status change would move backwards."""


class ReportPersistenceError(SecurityError):
    """Raised when a report cannot be written by the persistence collaborator.

    The already-computed dashboard, if any, travels with the error so callers
    do not lose the assessment.
    """

    def __init__(self, message: str, dashboard: Any = None, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.dashboard = dashboard


class NotificationError(SecurityError):
    """Raised when a critical alert cannot be delivered to the webhook endpoint."""

    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None) -> None:
        super().__init__(message, details)
        self.status_code = status_code
