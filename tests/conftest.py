"""Shared test fixtures for the provider security orchestrator test suite.

Unit tests build orchestrators against temp report directories and a fresh
EventBus. Webhook tests use MagicMock to simulate HTTP responses.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from provider_security.config import SecuritySettings
from provider_security.events import EventBus
from provider_security.orchestrator import SecurityOrchestrator
from provider_security.storage import ReportStorage


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def security_settings(tmp_path: Path) -> SecuritySettings:
    """Return SecuritySettings with test values."""
    return SecuritySettings(
        SECURITY_REPORT_PATH=str(tmp_path / "reports"),
        SECURITY_HISTORY_LIMIT=50,
        SECURITY_WEBHOOK_URL="https://hooks.example.test/security",
        SECURITY_WEBHOOK_TIMEOUT=5,
        SECURITY_WEBHOOK_MAX_RETRIES=2,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def event_log(bus: EventBus) -> list[tuple[str, Any]]:
    """Record every event published on ``bus`` as ``(topic, payload)``."""
    events: list[tuple[str, Any]] = []
    bus.subscribe("*", lambda topic, payload: events.append((topic, payload)))
    return events


@pytest.fixture
def report_storage(tmp_path: Path) -> ReportStorage:
    """Return a ReportStorage using a temp directory."""
    return ReportStorage(str(tmp_path / "reports"))


@pytest.fixture
def orchestrator(security_settings: SecuritySettings, bus: EventBus, report_storage: ReportStorage) -> SecurityOrchestrator:
    return SecurityOrchestrator(settings=security_settings, bus=bus, storage=report_storage)


@pytest.fixture
def secure_config() -> dict:
    """A provider configuration that satisfies every built-in rule."""
    return {
        "passwordPolicy": {"minLength": 14, "requireSpecialChars": True},
        "mfa": {"enabled": True},
        "encryption": {"atRest": True},
        "tls": {"enabled": True, "version": 1.3},
        "security": {"parameterizedQueries": True, "outputEncoding": True},
        "dataClassification": {"personalData": True},
        "anonymization": True,
        "network": {"accessControl": True},
    }


@pytest.fixture
def auth_without_controls() -> dict:
    """Authentication provider config missing only a password policy and MFA."""
    return {
        "tls": {"enabled": True, "version": 1.3},
        "security": {"outputEncoding": True},
        "dataClassification": {"personalData": True},
        "network": {"accessControl": True},
    }


@pytest.fixture
def mock_session() -> MagicMock:
    """Return a MagicMock that simulates a requests.Session."""
    session = MagicMock()
    response = MagicMock()
    response.ok = True
    response.status_code = 200
    session.post.return_value = response
    return session
