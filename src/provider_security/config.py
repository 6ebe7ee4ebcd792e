"""Configuration management for the provider security orchestrator.

Two layers:

* ``SecuritySettings`` holds process settings loaded from environment
  variables and .env files using pydantic-settings, with a cached singleton
  via get_settings().
* ``OrchestrationConfig`` holds the runtime security policy (schedules,
  thresholds, automation switches). It is mutated only through
  ``SecurityOrchestrator.update_configuration``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

Frequency = Literal["daily", "weekly", "monthly", "quarterly", "annually"]


class SecuritySettings(BaseSettings):
    """Application settings sourced from environment variables."""

    report_path: str = Field(".security-reports", alias="SECURITY_REPORT_PATH")
    history_limit: int = Field(500, alias="SECURITY_HISTORY_LIMIT", ge=1)
    assessment_timeout: float | None = Field(None, alias="SECURITY_ASSESSMENT_TIMEOUT", gt=0)
    webhook_url: str | None = Field(None, alias="SECURITY_WEBHOOK_URL")
    webhook_timeout: int = Field(10, alias="SECURITY_WEBHOOK_TIMEOUT")
    webhook_max_retries: int = Field(3, alias="SECURITY_WEBHOOK_MAX_RETRIES")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> SecuritySettings:
    """Return a cached singleton of SecuritySettings."""
    return SecuritySettings()


class _PolicyModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AuditSchedule(_PolicyModel):
    security: Frequency = "weekly"
    compliance: Frequency = "monthly"
    vulnerability: Frequency = "daily"


class Thresholds(_PolicyModel):
    """Score limits that decide provider status and emergency shutdown."""

    security_score: float = Field(80, ge=0, le=100)
    compliance_score: float = Field(90, ge=0, le=100)
    vulnerability_risk_score: float = Field(30, ge=0, le=100)
    critical_vulnerabilities: int = Field(0, ge=0)


class Automation(_PolicyModel):
    auto_remediation: bool = False
    auto_suppression: bool = False
    auto_notification: bool = True
    emergency_shutdown: bool = False


class Notifications(_PolicyModel):
    email: bool = False
    webhook: bool = False
    dashboard: bool = True


class Integration(_PolicyModel):
    siem: bool = False
    ticketing: bool = False
    chat_ops: bool = False
    cicd: bool = False


class OrchestrationConfig(_PolicyModel):
    """Runtime security policy for a SecurityOrchestrator."""

    audit_schedule: AuditSchedule = Field(default_factory=AuditSchedule)
    thresholds: Thresholds = Field(default_factory=Thresholds)
    automation: Automation = Field(default_factory=Automation)
    notifications: Notifications = Field(default_factory=Notifications)
    integration: Integration = Field(default_factory=Integration)

    def merged(self, updates: dict[str, Any]) -> OrchestrationConfig:
        """Return a validated copy with ``updates`` deep-merged in.

        Raises:
            pydantic.ValidationError: If the merged document is invalid.
        """
        return OrchestrationConfig.model_validate(_deep_merge(self.model_dump(), updates))


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
